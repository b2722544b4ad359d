# Test package: lets test modules share the in-memory fakes in tests/fakes.py
