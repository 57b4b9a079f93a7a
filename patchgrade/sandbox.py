"""
Sandbox for evaluating #test expressions against reconstructed student code.

Provides process isolation using subprocess with interpreter flags.
Unix: Uses resource module for CPU time and memory limits.
Windows: Uses timeout parameter (wall-clock time only).

Inside the child process the student's module runs in a fresh namespace whose
builtins have a configurable set of names removed and whose imports are
limited to an allow-list. This narrows accidental access to the host; it is
NOT a security boundary and must not be relied on as one.
"""

import sys
import json
import logging
import subprocess
import platform
import tempfile
from pathlib import Path
from typing import Any, Iterable, Tuple

logger = logging.getLogger(__name__)


PYTHON_EXE = sys.executable
ISOLATION_FLAGS = ['-I', '-B']


WRAPPER_CODE = r'''
import builtins
import contextlib
import io
import json
import sys


def emit(payload):
    sys.stdout.write("\n" + json.dumps(payload) + "\n")


def main():
    request = json.loads(sys.stdin.read())
    allowed = set(request["allowed_modules"])
    real_import = builtins.__import__

    def guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
        if level != 0 or name.split(".")[0] not in allowed:
            raise ImportError(f"import of '{name}' is not allowed")
        return real_import(name, globals, locals, fromlist, level)

    scope_builtins = dict(vars(builtins))
    scope_builtins["__import__"] = guarded_import
    for name in request["shadowed"]:
        scope_builtins.pop(name, None)
    scope = {"__builtins__": scope_builtins, "__name__": "exercise"}

    captured = io.StringIO()
    try:
        module_code = compile(request["source"], "exercise.py", "exec")
        call_code = compile(request["call"], "<test>", "eval")
        with contextlib.redirect_stdout(captured):
            exec(module_code, scope)
            result = eval(call_code, scope)
    except (Exception, SystemExit) as e:
        emit({"error": "runtime_error", "message": f"{type(e).__name__}: {e}"})
        return 1

    try:
        payload = json.dumps({"result": result})
    except (TypeError, ValueError) as e:
        emit({"error": "runtime_error", "message": f"Result is not JSON-serializable: {e}"})
        return 1

    sys.stdout.write("\n" + payload + "\n")
    return 0


sys.exit(main())
'''


def _set_limits(timeout_sec: float, memory_limit_mb: int):
    """Build a preexec_fn applying CPU and address-space limits."""
    def set_limits():
        try:
            import resource
            try:
                cpu = int(timeout_sec) + 1
                resource.setrlimit(resource.RLIMIT_CPU, (cpu, cpu))
            except (ValueError, OSError):
                pass

            try:
                memory_bytes = memory_limit_mb * 1024 * 1024
                resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
            except (ValueError, OSError):
                pass
        except ImportError:
            pass
    return set_limits


def _last_json_line(stdout: str):
    for line in reversed(stdout.splitlines()):
        if line.strip():
            return json.loads(line)
    raise json.JSONDecodeError("No output", stdout, 0)


def run_test_expression(
    source: str,
    call: str,
    timeout_sec: float,
    memory_limit_mb: int,
    shadowed: Iterable[str] = (),
    allowed_modules: Iterable[str] = ()
) -> Tuple[str, Any, str]:
    """
    Evaluate one expression against student source in a separate process.

    Args:
        source: Reconstructed student module
        call: Python expression evaluated in the module's namespace
        timeout_sec: Timeout in seconds
        memory_limit_mb: Memory limit in MB (Unix only)
        shadowed: Builtin names removed from the module's namespace
        allowed_modules: Top-level modules the module may import

    Returns:
        Tuple of (status, value, error_message)
        status: "success", "timeout", "runtime_error", "memory_error"
    """
    request = json.dumps({
        "source": source,
        "call": call,
        "shadowed": list(shadowed),
        "allowed_modules": list(allowed_modules),
    })

    with tempfile.TemporaryDirectory() as temp_dir:
        wrapper_path = Path(temp_dir) / "__wrapper__.py"
        with open(wrapper_path, 'w', encoding='utf-8') as f:
            f.write(WRAPPER_CODE)

        command = [PYTHON_EXE, *ISOLATION_FLAGS, str(wrapper_path)]
        logger.debug("Running test expression %r", call)

        try:
            if platform.system() != "Windows":
                proc = subprocess.run(
                    command,
                    input=request.encode('utf-8'),
                    capture_output=True,
                    timeout=timeout_sec * 2,  # Fallback wall-clock timeout
                    check=False,
                    cwd=temp_dir,
                    preexec_fn=_set_limits(timeout_sec, memory_limit_mb)
                )
            else:
                proc = subprocess.run(
                    command,
                    input=request.encode('utf-8'),
                    capture_output=True,
                    timeout=timeout_sec,
                    check=False,
                    cwd=temp_dir
                )
        except subprocess.TimeoutExpired:
            return "timeout", None, "Process exceeded time limit"

        stdout = proc.stdout.decode('utf-8', errors='replace')
        stderr = proc.stderr.decode('utf-8', errors='replace')

        try:
            result_data = _last_json_line(stdout)
        except json.JSONDecodeError:
            if 'MemoryError' in stderr:
                return "memory_error", None, "Memory limit exceeded"
            if proc.returncode < 0:
                # Killed by a signal, normally SIGXCPU from RLIMIT_CPU
                return "timeout", None, "Process exceeded time limit"
            logger.debug("Unparseable sandbox output: %s", stderr[:200])
            return "runtime_error", None, f"Failed to parse output: {stdout[:200]}"

        if not isinstance(result_data, dict):
            return "runtime_error", None, "Invalid response format"

        if "error" in result_data:
            message = result_data.get("message", "Unknown error")
            if message.startswith("MemoryError"):
                return "memory_error", None, "Memory limit exceeded"
            return "runtime_error", None, message

        if "result" in result_data:
            return "success", result_data["result"], ""

        return "runtime_error", None, "Invalid response format"
