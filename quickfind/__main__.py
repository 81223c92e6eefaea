"""
Convenience entry point for running quickfind as a module.

Usage: python -m quickfind [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
