import shutil
import sys
import tempfile
import unittest
from pathlib import Path

from anchor_mcp.sandbox.base import CompiledUnit, CompileError
from anchor_mcp.sandbox.compiler import CommandCompiler, EsbuildCompiler, TypeScriptCompiler
from anchor_mcp.sandbox.executor import ProcessExecutor

PY = sys.executable
ECHO = [PY, "-c", "import sys; sys.stdout.write(sys.stdin.read())"]


class TestCompilerAdapter(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.executor = ProcessExecutor(kill_grace=0.5)

    async def test_successful_compile_returns_stdout(self):
        compiler = CommandCompiler(self.executor, ECHO, name="echo")
        result = await compiler.compile("const x: number = 1;")
        self.assertIsInstance(result, CompiledUnit)
        self.assertEqual(result.text, "const x: number = 1;")

    async def test_diagnostics_from_stderr(self):
        argv = [PY, "-c", "import sys; sys.stderr.write('unit.ts(1,7): error TS1005: bad'); sys.exit(1)"]
        result = await CommandCompiler(self.executor, argv).compile("const = ;")
        self.assertIsInstance(result, CompileError)
        self.assertIn("TS1005", result.diagnostics)

    async def test_silent_failure_mentions_exit_code(self):
        result = await CommandCompiler(self.executor, [PY, "-c", "raise SystemExit(3)"], name="tsc").compile("x")
        self.assertIsInstance(result, CompileError)
        self.assertEqual(str(result), "tsc exited with code 3")

    async def test_missing_compiler(self):
        result = await CommandCompiler(self.executor, ["/nonexistent/tsc-binary"]).compile("x")
        self.assertIsInstance(result, CompileError)
        self.assertIn("Could not start", result.diagnostics)

    async def test_compiler_deadline(self):
        compiler = CommandCompiler(self.executor, [PY, "-c", "import time; time.sleep(30)"], name="slow")
        result = await compiler.compile("x", deadline=0.5)
        self.assertIsInstance(result, CompileError)
        self.assertIn("did not finish", result.diagnostics)


class TestBackendCommands(unittest.TestCase):
    def test_typescript_command(self):
        compiler = TypeScriptCompiler(ProcessExecutor(), node_binary="/opt/node/bin/node")
        argv = compiler.command()
        self.assertEqual(argv[0], "/opt/node/bin/node")
        self.assertEqual(argv[1], "-e")
        self.assertIn("transpileModule", argv[2])
        self.assertEqual(argv[3:], ["es2020", "commonjs"])

    def test_esbuild_command(self):
        argv = EsbuildCompiler(ProcessExecutor(), esbuild_binary="esbuild", target="ES2020").command()
        self.assertEqual(argv[0], "esbuild")
        self.assertIn("--loader=ts", argv)
        self.assertIn("--format=cjs", argv)
        self.assertIn("--target=es2020", argv)


# Minimal stand-in for the typescript package; echoes the options it was given.
TYPESCRIPT_STUB = r"""
module.exports = {
  ModuleKind: { CommonJS: 1, ESNext: 99 },
  ScriptTarget: { ES2020: 7, ESNext: 99 },
  DiagnosticCategory: { Warning: 0, Error: 1 },
  flattenDiagnosticMessageText: (message) => message,
  transpileModule(source, options) {
    if (source.includes("@@broken@@")) {
      return {
        outputText: "",
        diagnostics: [
          { category: 0, code: 6133, messageText: "unused" },
          { category: 1, code: 1005, messageText: "';' expected." },
        ],
      };
    }
    const opts = options.compilerOptions;
    const header = `// module=${opts.module} target=${opts.target} interop=${opts.esModuleInterop}\n`;
    return { outputText: header + source.replace(/: number/g, ""), diagnostics: [] };
  },
};
"""


@unittest.skipUnless(shutil.which("node"), "node is not installed")
class TestTypeScriptTranspileScript(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        package = Path(self.tmp.name) / "node_modules" / "typescript"
        package.mkdir(parents=True)
        (package / "index.js").write_text(TYPESCRIPT_STUB)
        self.executor = ProcessExecutor(kill_grace=0.5)

    def tearDown(self):
        self.tmp.cleanup()

    async def test_compiled_unit_with_default_options(self):
        result = await TypeScriptCompiler(self.executor).compile("const n: number = 1;", cwd=self.tmp.name)
        self.assertIsInstance(result, CompiledUnit)
        self.assertEqual(result.text, "// module=1 target=7 interop=true\nconst n = 1;")

    async def test_target_and_module_are_looked_up_case_insensitively(self):
        compiler = TypeScriptCompiler(self.executor, target="esnext", module_format="ESNEXT")
        result = await compiler.compile("x", cwd=self.tmp.name)
        self.assertIsInstance(result, CompiledUnit)
        self.assertTrue(result.text.startswith("// module=99 target=99"))

    async def test_unknown_names_fall_back_to_commonjs_es2020(self):
        compiler = TypeScriptCompiler(self.executor, target="es1999", module_format="amd")
        result = await compiler.compile("x", cwd=self.tmp.name)
        self.assertTrue(result.text.startswith("// module=1 target=7"))

    async def test_error_diagnostics_become_compile_error(self):
        result = await TypeScriptCompiler(self.executor).compile("@@broken@@", cwd=self.tmp.name)
        self.assertIsInstance(result, CompileError)
        self.assertEqual(result.diagnostics, "error TS1005: ';' expected.")

    async def test_missing_typescript_package(self):
        with tempfile.TemporaryDirectory() as empty:
            result = await TypeScriptCompiler(self.executor).compile("x", cwd=empty)
        self.assertIsInstance(result, CompileError)
        self.assertIn("typescript", result.diagnostics)


@unittest.skipUnless(shutil.which("node") and shutil.which("esbuild"), "node and esbuild are not installed")
class TestEsbuildEndToEnd(unittest.IsolatedAsyncioTestCase):
    async def test_transpiles_typescript(self):
        compiler = EsbuildCompiler(ProcessExecutor())
        with tempfile.TemporaryDirectory() as tmp:
            result = await compiler.compile("const n: number = 41 + 1;\nconsole.log(n);", cwd=tmp)
        self.assertIsInstance(result, CompiledUnit)
        self.assertNotIn(": number", result.text)
        self.assertIn("console.log(n)", result.text)


if __name__ == "__main__":
    unittest.main()
