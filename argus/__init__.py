"""Argus static site generator.

This package compiles a site's items through user-defined filters and layouts
according to declarative rules, and writes the results to an output tree.
Only representations whose sources changed since the previous run are
recompiled; checksums of every input are persisted between runs.

The main entry point is the CLI module, which provides commands for creating
sites, compiling them and running the development server. Programmatic use
goes through ``argus.site.Site``.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
