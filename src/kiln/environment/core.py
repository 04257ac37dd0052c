"""Kiln Environment: configuration and entry point for templates.

The Environment holds every setting of the pipeline in one place and hands
out Template objects:

    ```python
    env = Environment(
        cache_dir=".kiln-cache/templates",  # reuse built binaries
        cache_entries=1,                    # single-slot cache (default)
        timeout=30,                         # seconds per process
    )
    env.render("templates/page.kiln", {"types": types})
    ```

Configuration:
- ``delimiters``: directive delimiters (default ``<%`` / ``%>``)
- ``template_extension``: extension tried for includes (default ``kiln``)
- ``import_extension``: extension tried for imports (default ``py``)
- ``max_include_depth``: most includes nested below the root template (default 64)
- ``cache_dir``: binary cache directory; None builds on every render
- ``cache_entries``: binaries kept in ``cache_dir`` (default 1)
- ``toolchain``: external programs used to compile and link
- ``timeout``: seconds a rendering program may run (None = no limit)
- ``build_root``: where per-render workspaces are created (default: the
  system temp directory)

Environments are immutable after construction, apart from the shared
cache directory on disk.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kiln.build import BuildOrchestrator, Toolchain
from kiln.cache import BinaryCache
from kiln.compiler import CodeGenerator
from kiln.environment.exceptions import MissingFileError
from kiln.lexer import DEFAULT_DELIMITERS, Delimiters
from kiln.parser import (
    DEFAULT_IMPORT_EXTENSION,
    DEFAULT_MAX_INCLUDE_DEPTH,
    DEFAULT_TEMPLATE_EXTENSION,
    Parser,
)
from kiln.runner import ExecutionRunner
from kiln.template import Template

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Environment:
    """Central configuration for parsing, building and rendering templates.

    Example:
            >>> env = Environment()
            >>> env.from_string("Hello <%= name %>!").render(name="World")
            'Hello World!'
    """

    delimiters: Delimiters = DEFAULT_DELIMITERS
    template_extension: str = DEFAULT_TEMPLATE_EXTENSION
    import_extension: str = DEFAULT_IMPORT_EXTENSION
    max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH
    cache_dir: str | Path | None = None
    cache_entries: int = 1
    toolchain: Toolchain = field(default_factory=Toolchain)
    timeout: float | None = None
    build_root: str | Path | None = None
    encoding: str = "utf-8"

    # Derived collaborators
    builder: BuildOrchestrator = field(init=False, repr=False, compare=False)
    runner: ExecutionRunner = field(init=False, repr=False, compare=False)
    cache: BinaryCache | None = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_include_depth < 1:
            raise ValueError("max_include_depth must be at least 1")
        object.__setattr__(
            self, "builder", BuildOrchestrator(self.toolchain, build_root=self.build_root)
        )
        object.__setattr__(self, "runner", ExecutionRunner(timeout=self.timeout))
        cache = None
        if self.cache_dir is not None:
            cache = BinaryCache(self.cache_dir, max_entries=self.cache_entries)
        object.__setattr__(self, "cache", cache)

    def get_template(self, path: str | Path) -> Template:
        """Load, parse and generate the template at ``path``.

        Raises:
            MissingFileError: ``path`` does not exist
            ParseError, DirectiveError, IncludeCycleError: Invalid template
        """
        path = Path(path)
        if not path.is_file():
            raise MissingFileError(f"File {path} does not exist!")
        return self._load(path, source=None)

    def from_string(self, source: str, *, path: str | Path | None = None) -> Template:
        """Create a template from source text.

        Args:
            source: Template source.
            path: Path the source pretends to live at; includes and imports
                resolve against its directory. Defaults to the current
                directory.
        """
        if path is None:
            path = Path.cwd() / "<string>"
        return self._load(Path(path), source=source)

    def render(self, path: str | Path, context: dict[str, Any] | None = None, **variables: Any) -> str:
        """Shortcut for ``get_template(path).render(context, **variables)``."""
        return self.get_template(path).render(context, **variables)

    def _load(self, path: Path, *, source: str | None) -> Template:
        parser = Parser(
            path,
            source=source,
            delimiters=self.delimiters,
            template_extension=self.template_extension,
            import_extension=self.import_extension,
            max_include_depth=self.max_include_depth,
            encoding=self.encoding,
        )
        commands = parser.parse()
        program = CodeGenerator().generate(commands)
        logger.debug(
            "Parsed %s: %d commands, %d imports", path, len(commands), len(commands.imports)
        )
        return Template(self, path, commands, program)
