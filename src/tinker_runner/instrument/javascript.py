"""Node.js profile.

User code runs inside a plain function whose ``console`` parameter shadows
the global one, so every ``console.log/info/warn/error`` call is captured
(and still echoed). Probes are appended at the bottom of that function and
evaluated with direct ``eval`` so they see its local bindings, each in its own
``try``. The payload is written once, either after the run or from the
``exit`` hook when user code calls ``process.exit()``.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping, Sequence

from ..languages import JAVASCRIPT
from ..magic import MagicComment
from .profiles import TargetProfile, render_template

_HARNESS = """\
const __tinkerStart = {{START}};
const __tinkerEnd = {{END}};
const __tinkerNodeModules = {{NODE_MODULES}};
const __tinkerOutput = [];
const __tinkerProbes = [];
const __tinkerResult = { output: __tinkerOutput, error: null, probes: __tinkerProbes };
let __tinkerEmitted = false;

if (typeof globalThis.window === 'undefined') {
  globalThis.window = globalThis;
}
if (typeof globalThis.document === 'undefined') {
  globalThis.document = {
    createElement: () => ({}),
    getElementById: () => null,
    querySelector: () => null,
    querySelectorAll: () => [],
  };
}

(function () {
  const path = require('path');
  const Module = require('module');
  const originalRequire = Module.prototype.require;
  Module.prototype.require = function (id) {
    try {
      return originalRequire.apply(this, arguments);
    } catch (err) {
      if (err && err.code === 'MODULE_NOT_FOUND' && typeof id === 'string' && !id.startsWith('.') && !path.isAbsolute(id)) {
        return originalRequire.call(this, path.join(__tinkerNodeModules, id));
      }
      throw err;
    }
  };
})();

function __tinkerStringify(value, indent) {
  const ancestors = [];
  return JSON.stringify(value, function (key, val) {
    if (typeof val === 'bigint') {
      return val.toString() + 'n';
    }
    if (typeof val === 'function') {
      return '[Function: ' + (val.name || 'anonymous') + ']';
    }
    if (val === undefined) {
      return null;
    }
    if (typeof val !== 'object' || val === null) {
      return val;
    }
    while (ancestors.length > 0 && ancestors[ancestors.length - 1] !== this) {
      ancestors.pop();
    }
    if (ancestors.includes(val)) {
      return '[Circular]';
    }
    ancestors.push(val);
    return val;
  }, indent);
}

function __tinkerText(arg) {
  if (typeof arg === 'string') {
    return arg;
  }
  if (arg === undefined) {
    return 'undefined';
  }
  if (typeof arg === 'symbol') {
    return arg.toString();
  }
  if (arg instanceof Error) {
    return arg.stack || String(arg);
  }
  try {
    const text = __tinkerStringify(arg, typeof arg === 'object' && arg !== null ? 2 : undefined);
    return text === undefined ? String(arg) : text;
  } catch (err) {
    return String(arg);
  }
}

function __tinkerPlaceholder(value) {
  if (value === undefined) {
    return null;
  }
  if (typeof value === 'function') {
    return '[Function: ' + (value.name || 'anonymous') + ']';
  }
  if (typeof value === 'bigint') {
    return value.toString() + 'n';
  }
  try {
    const text = __tinkerStringify(value);
    if (text === undefined) {
      return '[Non-serializable: ' + typeof value + ']';
    }
    return JSON.parse(text);
  } catch (err) {
    return '[Non-serializable: ' + typeof value + ']';
  }
}

function __tinkerError(err) {
  if (err instanceof Error) {
    return { message: String(err.message), stack: err.stack || null, name: err.name || 'Error' };
  }
  let message;
  try {
    message = String(err);
  } catch (e) {
    message = '[Non-serializable: ' + typeof err + ']';
  }
  return { message: message, stack: null, name: typeof err };
}

const __tinkerOriginalConsole = console;
const __tinkerConsole = Object.create(console);
for (const kind of ['log', 'info', 'warn', 'error']) {
  __tinkerConsole[kind] = function (...args) {
    if (args.length === 0 || args.every((arg) => arg === undefined)) {
      return;
    }
    __tinkerOutput.push({ kind: kind, text: args.map(__tinkerText).join(' ') });
    __tinkerOriginalConsole[kind].apply(__tinkerOriginalConsole, args);
  };
}

function __tinkerEmit() {
  if (__tinkerEmitted) {
    return;
  }
  __tinkerEmitted = true;
  let body;
  try {
    body = __tinkerStringify(__tinkerResult);
  } catch (err) {
    body = JSON.stringify({
      output: __tinkerOutput.map((entry) => ({ kind: entry.kind, text: String(entry.text) })),
      error: __tinkerResult.error || { message: 'Result serialization failed: ' + __tinkerError(err).message, stack: null, name: 'SerializationError' },
    });
  }
  process.stdout.write(__tinkerStart + '\\n' + body + '\\n' + __tinkerEnd + '\\n');
}
process.once('exit', __tinkerEmit);

function __tinkerRun(console) {
{{CODE}}
{{PROBES}}
}

try {
  __tinkerRun(__tinkerConsole);
} catch (err) {
  __tinkerResult.error = __tinkerError(err);
}
__tinkerEmit();
"""

_PROBE = """\
  {
    try {
      const __tinkerValue = eval({{EXPRESSION}});
      __tinkerProbes.push({ line: {{LINE}}, expression: {{EXPRESSION}}, value: __tinkerPlaceholder(__tinkerValue) });
    } catch (__tinkerProbeError) {
      __tinkerProbes.push({ line: {{LINE}}, expression: {{EXPRESSION}}, value: null, error: __tinkerError(__tinkerProbeError).message });
    }
  }"""


class JavaScriptProfile(TargetProfile):
    """Run snippets with Node.js.

    Example:
        ```python
        script = JavaScriptProfile().build_script("1 + 1", [], data_dir)
        ```
    """

    language = JAVASCRIPT
    display_name = "Node.js"
    suffix = ".js"
    start_sentinel = "__TINKER_JS_RESULT_START__"
    end_sentinel = "__TINKER_JS_RESULT_END__"
    dependency_subdir = "node_modules"
    comment_markers = ("//",)
    parse_error_marker = "SyntaxError"

    def build_script(self, code: str, magic_comments: Sequence[MagicComment], data_dir: Path) -> str:
        """Wrap ``code`` in the console-capturing harness.

        Example:
            ```python
            script = profile.build_script("const a = 1; // $ a", [MagicComment(1, "a")], data_dir)
            ```
        """
        probes = "\n".join(
            render_template(_PROBE, LINE=str(comment.line), EXPRESSION=json.dumps(comment.expression))
            for comment in magic_comments
        )
        return render_template(
            _HARNESS,
            START=json.dumps(self.start_sentinel),
            END=json.dumps(self.end_sentinel),
            NODE_MODULES=json.dumps(str(self.dependency_dir(data_dir))),
            CODE=code,
            PROBES=probes,
        )

    def child_env(
        self,
        data_dir: Path,
        interpreter: str,
        base: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Point ``NODE_PATH`` at the user modules and put the interpreter's bin dir on ``PATH``.

        Example:
            ```python
            env = profile.child_env(data_dir, "/home/me/.nvm/versions/node/v20.11.0/bin/node")
            ```
        """
        env = super().child_env(data_dir, interpreter, base)
        env["NODE_PATH"] = str(self.dependency_dir(data_dir))
        bin_dir = os.path.dirname(interpreter)
        if bin_dir:
            current = env.get("PATH", "")
            env["PATH"] = bin_dir + os.pathsep + current if current else bin_dir
        return env
