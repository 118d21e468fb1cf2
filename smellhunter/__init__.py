"""
smellhunter - Laravel/PHP code smell analyzer (tree-sitter)
===========================================================
Static analysis of Laravel projects for architectural and performance smells:
PHP-side filtering of query results, silent failures, generic exception
catches, hardcoded storage paths, logic in routes and Blade templates, mixed
Query Builder/Eloquent usage and N+1 relationship access.
"""

__version__ = "1.0.0"
