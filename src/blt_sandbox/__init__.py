"""
blt-sandbox: test sandbox orchestration for the BLT project tooling.

Builds a "master" sandbox project once (fixture copy, manifest wired to the
local tool checkout through path repositories, dependencies installed) and
hands out disposable "instance" copies of it for individual tests.

Importing the package has no side effects: no config loading, no logging setup.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
