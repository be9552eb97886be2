"""
Compiler Adapter.

Transpiles a synthesized TypeScript unit into CommonJS JavaScript through an
external toolchain. The unit is piped to the compiler on stdin and the
executable text is read back from stdout. Every failure comes back as a
``CompileError`` value.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Union

from .base import CompiledUnit, CompileError, ExitStatus
from .executor import ProcessExecutor

logger = logging.getLogger("anchor_mcp.compiler")

DEFAULT_TARGET = "es2020"
DEFAULT_MODULE_FORMAT = "commonjs"

# Runs inside node: stdin -> ts.transpileModule -> stdout, syntax diagnostics -> stderr.
TRANSPILE_SCRIPT = r"""
const ts = require("typescript");
const [target, moduleFormat] = process.argv.slice(1);
const pick = (table, name, fallback) => {
  const key = Object.keys(table).find((k) => k.toLowerCase() === String(name).toLowerCase());
  return key === undefined ? fallback : table[key];
};
let source = "";
process.stdin.setEncoding("utf8");
process.stdin.on("data", (chunk) => { source += chunk; });
process.stdin.on("end", () => {
  const result = ts.transpileModule(source, {
    reportDiagnostics: true,
    fileName: "unit.ts",
    compilerOptions: {
      module: pick(ts.ModuleKind, moduleFormat, ts.ModuleKind.CommonJS),
      target: pick(ts.ScriptTarget, target, ts.ScriptTarget.ES2020),
      esModuleInterop: true,
      skipLibCheck: true,
      resolveJsonModule: true,
    },
  });
  const errors = (result.diagnostics || []).filter(
    (d) => d.category === ts.DiagnosticCategory.Error
  );
  if (errors.length) {
    for (const d of errors) {
      const text = ts.flattenDiagnosticMessageText(d.messageText, "\n");
      if (d.file && d.start !== undefined) {
        const { line, character } = d.file.getLineAndCharacterOfPosition(d.start);
        process.stderr.write(`unit.ts(${line + 1},${character + 1}): error TS${d.code}: ${text}\n`);
      } else {
        process.stderr.write(`error TS${d.code}: ${text}\n`);
      }
    }
    process.exit(1);
  }
  process.stdout.write(result.outputText);
});
"""

CompileResult = Union[CompiledUnit, CompileError]


class CompilerAdapter(ABC):
    """Base class for transpiler backends driven through the Process Executor."""

    name = "compiler"

    def __init__(
        self,
        executor: ProcessExecutor,
        target: str = DEFAULT_TARGET,
        module_format: str = DEFAULT_MODULE_FORMAT,
    ):
        self.executor = executor
        self.target = target
        self.module_format = module_format

    @abstractmethod
    def command(self) -> List[str]:
        """Full argv of the compiler; the unit is supplied on stdin."""

    async def compile(
        self,
        unit: str,
        cwd: Union[str, os.PathLike, None] = None,
        deadline: float = 60.0,
    ) -> CompileResult:
        argv = self.command()
        outcome = await self.executor.run(argv[0], argv[1:], cwd=cwd, deadline=deadline, stdin_text=unit)

        if outcome.status is ExitStatus.SPAWN_FAILED:
            return CompileError(f"Could not start {self.name} ({argv[0]}): {outcome.error}")
        if outcome.status is ExitStatus.TIMED_OUT:
            return CompileError(f"{self.name} did not finish within {deadline}s")
        if outcome.status is ExitStatus.NON_ZERO_EXIT:
            diagnostics = (outcome.stderr or outcome.stdout).strip()
            return CompileError(diagnostics or f"{self.name} exited with code {outcome.exit_code}")

        logger.debug(f"{self.name} produced {len(outcome.stdout)} chars in {outcome.duration_ms:.0f}ms")
        return CompiledUnit(outcome.stdout)


class TypeScriptCompiler(CompilerAdapter):
    """``typescript.transpileModule`` run by node; resolves ``typescript`` from the job's cwd."""

    name = "typescript"

    def __init__(self, executor: ProcessExecutor, node_binary: str = "node", **kwargs):
        super().__init__(executor, **kwargs)
        self.node_binary = node_binary

    def command(self) -> List[str]:
        return [self.node_binary, "-e", TRANSPILE_SCRIPT, self.target, self.module_format]


class EsbuildCompiler(CompilerAdapter):
    name = "esbuild"

    _FORMATS = {"commonjs": "cjs", "cjs": "cjs", "esm": "esm", "es2015": "esm", "iife": "iife"}

    def __init__(self, executor: ProcessExecutor, esbuild_binary: str = "esbuild", **kwargs):
        super().__init__(executor, **kwargs)
        self.esbuild_binary = esbuild_binary

    def command(self) -> List[str]:
        fmt = self._FORMATS.get(self.module_format.lower(), "cjs")
        return [
            self.esbuild_binary,
            "--loader=ts",
            f"--format={fmt}",
            f"--target={self.target.lower()}",
            "--log-level=error",
        ]


class CommandCompiler(CompilerAdapter):
    """Any filter-style compiler given as an explicit argv."""

    def __init__(self, executor: ProcessExecutor, argv: Sequence[str], name: Optional[str] = None, **kwargs):
        super().__init__(executor, **kwargs)
        self.argv = list(argv)
        self.name = name or os.path.basename(self.argv[0])

    def command(self) -> List[str]:
        return list(self.argv)
