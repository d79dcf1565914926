"""db-extractor-foundry test suite.

Tests run against a temporary SQLite database (see conftest.py) and
scripted fake connections (fakes.py). No ODBC driver is required.
"""
