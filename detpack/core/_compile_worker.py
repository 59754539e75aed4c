"""Bytecode worker, executed as a script by ``detpack.core.compiler``.

Runs inside the *target* interpreter so the generated ``.pyc`` files carry
that interpreter's magic number and cache tag.  Standard library only: the
target interpreter does not need detpack installed.

Prints exactly one JSON object on stdout and exits 0 on success, 1 when a
source file is rejected.
"""

from __future__ import annotations

import argparse
import importlib.util
import json
import os
import posixpath
import py_compile
import sys

_MODES = {
    "timestamp": py_compile.PycInvalidationMode.TIMESTAMP,
    "checked-hash": py_compile.PycInvalidationMode.CHECKED_HASH,
    "unchecked-hash": py_compile.PycInvalidationMode.UNCHECKED_HASH,
}


def iter_sources(root):
    """Yield regular ``*.py`` files under *root* in sorted order."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d
            for d in dirnames
            if d != "__pycache__" and not os.path.islink(os.path.join(dirpath, d))
        )
        for name in sorted(filenames):
            if not name.endswith(".py"):
                continue
            path = os.path.join(dirpath, name)
            if os.path.islink(path) or not os.path.isfile(path):
                continue
            yield path


def compile_tree(root, mode, optimize, prefix):
    compiled = []
    opt_tag = "" if optimize == 0 else optimize
    for path in iter_sources(root):
        rel = os.path.relpath(path, root).replace(os.sep, "/")
        # Embedded file name: tree-relative, never the scratch location.
        dfile = posixpath.join(prefix, rel) if prefix else rel
        cfile = importlib.util.cache_from_source(path, optimization=opt_tag)
        try:
            py_compile.compile(
                path,
                cfile=cfile,
                dfile=dfile,
                doraise=True,
                optimize=optimize,
                invalidation_mode=_MODES[mode],
            )
        except py_compile.PyCompileError as exc:
            return {"ok": False, "path": rel, "error": exc.msg.strip()}
        except OSError as exc:
            return {"ok": False, "path": rel, "error": str(exc)}
        compiled.append(rel)
    return {
        "ok": True,
        "compiled": sorted(compiled),
        "cache_tag": sys.implementation.cache_tag or "",
    }


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("root")
    parser.add_argument("--invalidation-mode", choices=sorted(_MODES), default="timestamp")
    parser.add_argument("--optimize", type=int, default=0)
    parser.add_argument("--prefix", default="")
    args = parser.parse_args(argv)

    result = compile_tree(args.root, args.invalidation_mode, args.optimize, args.prefix)
    sys.stdout.write(json.dumps(result, sort_keys=True))
    sys.stdout.write("\n")
    return 0 if result["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
