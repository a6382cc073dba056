"""specforge -- Generate OpenAPI documents and project scaffolding from TOML API definitions.

This package turns a declarative description of an HTTP API (endpoints,
schemas, query parameters and model translations) into an OpenAPI document,
a translation lookup document, and project source files. Re-running the
generator updates only the delimited *merge regions* of files a developer
has already edited, leaving everything else untouched.

Typical workflow::

    specforge new shop          # scaffold a project with a starter API
    cd shop
    specforge generate          # regenerate docs and merge regions

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware global config and project config resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    normalizer: Validation and normalization of parsed API definitions.
"""

__version__ = "0.3.0"
