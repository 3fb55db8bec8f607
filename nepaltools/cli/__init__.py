"""
Command-line interface built on Typer, with Rich output.
"""
