"""Test suite for the dynaform form runtime.

This package contains tests for:
- Reactive signals, path helpers and the expression language
- Configuration parsing, condition evaluation and value validation
- Field bindings, array controllers and page navigation
- Derived values and the FormRuntime facade
"""
