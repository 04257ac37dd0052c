"""Build orchestration for Kiln templates.

Turns a GeneratedProgram into an executable with the external toolchain,
optionally going through the binary cache.

Workspace Layout:
Every build gets its own workspace; nothing is shared between concurrent
builds except the cache directory.

    ```
    <build_root>/kiln-XXXXXXXX/     # unique per render (workspace parent)
    ├── kiln_runtime.py             # runtime support, found via the launcher
    └── build/                      # workspace, wiped before each build
        ├── src/
        │   ├── __main__.py         # launcher (search path → ../..)
        │   ├── main.pyc            # compiled program (main.py removed)
        │   └── helpers.pyc         # compiled imports (sources removed)
        └── bin                     # the executable
    ```

Toolchain:
1. **Compile**: ``python -W ignore -c <py_compile driver> main.py <imports>``
   writes ``main.pyc`` next to each source. Anything on stderr is a
   CompileError. The sources are then removed, so the archive only ships
   bytecode and the program is never compiled again (with warnings
   enabled) when it runs.
2. **Link**: ``python -m zipapp <ws>/src -o <ws>/bin -p <python>``. The
   launcher written into the archive puts the parent of the directory
   holding the executable on the module search path, where the runtime
   support is copied. Anything on stderr is a LinkError.

"""

from __future__ import annotations

import logging
import shutil
import sys
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from kiln.cache import BinaryCache, cache_key
from kiln.compiler import MAIN_MODULE, GeneratedProgram
from kiln.environment.exceptions import CompileError, LinkError
from kiln.runner import run_command
from kiln.runtime import RUNTIME_FILES, copy_runtime

logger = logging.getLogger(__name__)

BINARY_NAME = "bin"

_LAUNCHER = f"""\
import os
import runpy
import sys

# Runtime support lives in the parent of the directory holding this executable
sys.path.insert(1, os.path.dirname(os.path.dirname(os.path.abspath(sys.argv[0]))))
runpy.run_module({MAIN_MODULE!r}, run_name="__main__", alter_sys=False)
"""

# Bytecode lands next to its source (``main.py`` -> ``main.pyc``), where the
# archive importer finds it without a source file
_COMPILE_DRIVER = """\
import py_compile
import sys

for source in sys.argv[1:]:
    try:
        py_compile.compile(
            source,
            cfile=source + "c",
            doraise=True,
            invalidation_mode=py_compile.PycInvalidationMode.UNCHECKED_HASH,
        )
    except py_compile.PyCompileError as error:
        sys.stderr.write(error.msg)
        sys.exit(1)
"""


@dataclass(frozen=True, slots=True)
class Toolchain:
    """External programs used to build templates.

    Attributes:
        interpreter: Python used to compile, link and run built programs.
        compile_flags: Interpreter flags for the compile step. The default
            suppresses warnings; no optimization flag is ever passed.
        timeout: Seconds allowed for each toolchain process (None = no limit).
    """

    interpreter: str = sys.executable
    compile_flags: tuple[str, ...] = ("-W", "ignore")
    timeout: float | None = None

    def compile_command(self, sources: Sequence[Path]) -> list[str]:
        """Byte-compile each source into ``<source>c`` beside it."""
        return [
            self.interpreter,
            *self.compile_flags,
            "-c",
            _COMPILE_DRIVER,
            *(str(source) for source in sources),
        ]

    def link_command(self, source_dir: Path, output: Path) -> list[str]:
        return [
            self.interpreter,
            "-m",
            "zipapp",
            str(source_dir),
            "-o",
            str(output),
            "-p",
            self.interpreter,
        ]


@dataclass(frozen=True, slots=True)
class Artifact:
    """A built executable.

    Attributes:
        path: Executable to run.
        key: Cache key, or None when built without a cache.
        cached: True when reused from the cache without building.
    """

    path: Path
    key: str | None = None
    cached: bool = False


class BuildOrchestrator:
    """Build generated programs, with or without a cache.

    Example:
            >>> builder = BuildOrchestrator()
            >>> with builder.workspace() as ws:
            ...     artifact = builder.artifact_for(program, ws, cache=BinaryCache(".cache/t"))
            ...     subprocess.run([artifact.path, context_file])

    Thread-Safety:
        Each call to workspace() creates a fresh directory, so concurrent
        builds never share files. Cache misses for one cache directory are
        serialised inside this process.
    """

    __slots__ = ("build_root", "toolchain")

    def __init__(
        self,
        toolchain: Toolchain | None = None,
        *,
        build_root: str | Path | None = None,
    ):
        self.toolchain = toolchain or Toolchain()
        self.build_root = Path(build_root) if build_root is not None else None

    @contextmanager
    def workspace(self) -> Iterator[Path]:
        """Create a unique workspace parent, removed on exit."""
        if self.build_root is not None:
            self.build_root.mkdir(parents=True, exist_ok=True)
        root = Path(tempfile.mkdtemp(prefix="kiln-", dir=self.build_root))
        logger.debug("Workspace %s", root)
        try:
            yield root
        finally:
            shutil.rmtree(root, ignore_errors=True)

    def artifact_for(
        self,
        program: GeneratedProgram,
        workspace: Path,
        cache: BinaryCache | None = None,
    ) -> Artifact:
        """Return an executable for ``program``.

        Without a cache the program is always built inside ``workspace``.
        With a cache, a stored binary for the same key is reused; on a miss
        the program is built in ``workspace`` and moved into the cache.
        A failed build never creates a cache entry.
        """
        if cache is None:
            return Artifact(self.build(program, workspace / "build"))

        key = cache_key(program.source, program.imports)
        binary = self._cached(cache, key)
        if binary is not None:
            return Artifact(binary, key=key, cached=True)

        with cache.lock:
            # Another thread may have built it while we waited
            binary = self._cached(cache, key)
            if binary is not None:
                return Artifact(binary, key=key, cached=True)

            logger.info("Building %s (cache miss)", key)
            built = self.build(program, workspace / "build")
            copy_runtime(cache.runtime_dir)
            return Artifact(cache.store(key, built), key=key)

    def _cached(self, cache: BinaryCache, key: str) -> Path | None:
        binary = cache.get(key)
        if binary is not None and not all(
            (cache.runtime_dir / name).is_file() for name in RUNTIME_FILES
        ):
            copy_runtime(cache.runtime_dir)
        return binary

    def build(self, program: GeneratedProgram, workspace: Path) -> Path:
        """Build ``program`` in ``workspace`` and return the executable.

        The workspace is wiped and recreated first. Runtime support is
        copied into the workspace's parent, where the launcher looks for it.

        Raises:
            CompileError: The compiler wrote to stderr
            LinkError: The link step wrote to stderr
        """
        if workspace.exists():
            shutil.rmtree(workspace)
        source_dir = workspace / "src"
        source_dir.mkdir(parents=True)
        copy_runtime(workspace.parent)

        main_file = source_dir / f"{MAIN_MODULE}.py"
        binary = workspace / BINARY_NAME

        main_file.write_text(program.source, encoding="utf-8")
        sources = [main_file, *self._copy_imports(program.imports, source_dir)]

        compiled = run_command(
            self.toolchain.compile_command(sources),
            timeout=self.toolchain.timeout,
        )
        if compiled.error:
            raise CompileError(compiled.error)

        # Ship bytecode only; a source next to it would be recompiled at run time
        for source in sources:
            source.unlink(missing_ok=True)

        (source_dir / "__main__.py").write_text(_LAUNCHER, encoding="utf-8")
        linked = run_command(
            self.toolchain.link_command(source_dir, binary),
            timeout=self.toolchain.timeout,
        )
        if linked.error:
            raise LinkError(linked.error)

        logger.debug("Built %s", binary)
        return binary

    @staticmethod
    def _copy_imports(imports: Sequence[Path], directory: Path) -> list[Path]:
        copied = []
        for path in imports:
            destination = directory / path.name
            shutil.copyfile(path, destination)
            copied.append(destination)
        return copied
