"""gcelb test suite."""
