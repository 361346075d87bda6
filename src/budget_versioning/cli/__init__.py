"""Command-line interface for budget versioning"""
