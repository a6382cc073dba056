"""API definition parser -- load TOML sources and build the typed IR.

This sub-package is the first stage of the specforge pipeline: turning
configuration text into :class:`~specforge.models.ApiDefinition` objects that
the normalizer can check and complete.

Typical usage::

    from specforge.parser import load_source, parse_sources

    definitions = parse_sources(load_source("config/openapi"))

Sub-modules:

* :mod:`~specforge.parser.loader` -- I/O layer (file, directory, stdin) and
  TOML decoding with located syntax errors.
* :mod:`~specforge.parser.extractor` -- Walks decoded documents and produces
  the IR, resolving shorthand field declarations into tagged field types.
"""

from specforge.parser.extractor import parse_api, parse_sources
from specforge.parser.loader import SourceText, load_source

__all__ = ["SourceText", "load_source", "parse_api", "parse_sources"]
