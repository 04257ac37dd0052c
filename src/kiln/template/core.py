"""Kiln Template: a parsed template ready to be built and rendered.

Architecture:
    ```
    Template
    ├── source_path         # Root template path (includes resolve against it)
    ├── commands            # CommandSequence, includes spliced in
    ├── program             # GeneratedProgram: source + import files
    └── _env                # Environment: builder, runner, cache settings
    ```

Render Pipeline:
    ```
    render(context)
    → workspace()                         # unique temp dir for this call
    → artifact_for(program, cache)        # cache hit, or compile + link
    → ExecutionRunner.run(binary, ctx)    # serialize context, run, capture
    → stdout
    ```

A Template never changes after construction; it owns its command sequence
and generated source. Rendering creates only per-call state, so one
Template can be rendered from several threads at once.

"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kiln.cache import cache_key

if TYPE_CHECKING:
    from kiln._types import CommandSequence
    from kiln.compiler import GeneratedProgram
    from kiln.environment import Environment

logger = logging.getLogger(__name__)


class Template:
    """Parsed and generated template.

    Attributes:
        source_path: Path of the root template
        commands: Command sequence (includes already expanded)
        program: Generated program source and import files

    Example:
            >>> env = Environment(cache_dir=".kiln-cache/templates")
            >>> t = env.get_template("templates/hello.kiln")
            >>> t.render(name="World")
            'Hello World!'

            >>> t.render({"name": "World"})  # Dict context also works
            'Hello World!'
    """

    __slots__ = ("_env", "commands", "program", "source_path")

    def __init__(
        self,
        env: Environment,
        source_path: Path,
        commands: CommandSequence,
        program: GeneratedProgram,
    ):
        self._env = env
        self.source_path = source_path
        self.commands = commands
        self.program = program

    @property
    def code(self) -> str:
        """Generated program source."""
        return self.program.source

    @property
    def imports(self) -> tuple[Path, ...]:
        """Files compiled alongside the generated program."""
        return self.program.imports

    def cache_key(self) -> str:
        """Content key of the generated program and its imports."""
        return cache_key(self.program.source, self.program.imports)

    def build(self, destination: str | Path) -> Path:
        """Build the program into ``destination`` and return the executable.

        The executable needs the runtime support that is copied into
        ``destination``'s parent; keep the two together.
        """
        return self._env.builder.build(self.program, Path(destination))

    def render(self, *args: Any, **kwargs: Any) -> str:
        """Render the template with the given context.

        Accepts a mapping, keyword arguments, or both (keywords win):

            >>> t.render({"name": "World"}, greeting="Hi")

        Raises:
            CompileError, LinkError: The generated program failed to build
            RenderError: The program reported an error while rendering
            ProcessError: The program was killed or timed out
            ContextError: The context cannot be serialized
        """
        context: dict[str, Any] = {}
        if args:
            if len(args) > 1:
                raise TypeError(f"render() takes at most 1 positional argument ({len(args)} given)")
            if args[0] is not None:
                context.update(args[0])
        context.update(kwargs)

        env = self._env
        with env.builder.workspace() as workspace:
            artifact = env.builder.artifact_for(self.program, workspace, cache=env.cache)
            logger.debug(
                "Rendering %s with %s binary %s",
                self.source_path,
                "cached" if artifact.cached else "fresh",
                artifact.path,
            )
            return env.runner.run(
                artifact.path,
                context,
                workspace=workspace,
                source_path=self.source_path,
            )

    def __repr__(self) -> str:
        return f"<Template {str(self.source_path)!r}>"
