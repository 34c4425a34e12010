"""CI/CD operator test suite."""
