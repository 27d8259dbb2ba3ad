"""Docent: grounded artwork chat over museum catalogs."""
