"""Oracle adapter: external assemblers as opcode-byte producers.

The rewriter never encodes an instruction itself.  Each backend drives one
external tool and returns raw bytes per instruction:

    YasmBackend   [bits N] source  →  flat binary        (one call per instruction)
    GasBackend    .intel_syntax    →  -al= listing       (one call per batch)

Backends are tried in order; the first that accepts the whole batch wins.
All scratch files live in a per-call directory owned by an EncoderSession
and are removed on every exit path.

GAS listing rows look like

       2 0000 62D1F548       VPADDQ  ZMM0,ZMM1,ZMM8
       2      D4C0

and are demultiplexed by their leading source line number.
"""
from __future__ import annotations
import contextlib
import logging
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from asmlit.classify import Instruction
from asmlit.config import RewriteConfig
from asmlit.errors import (
    EncodeError, EncoderUnavailable, ListingCorrelationError, ResourceError,
)

log = logging.getLogger(__name__)


# ── Encoder session ────────────────────────────────────────────────────────────

class EncoderSession:
    """Scoped owner of the scratch directories handed to oracle backends."""

    def __init__(self, prefix: str = "asmlit-", base_dir: Optional[str] = None):
        self.prefix   = prefix
        self.base_dir = base_dir
        self._live: set[Path] = set()

    @property
    def live(self) -> frozenset[Path]:
        return frozenset(self._live)

    @contextlib.contextmanager
    def workdir(self) -> Iterator[Path]:
        try:
            path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.base_dir))
        except OSError as e:
            raise ResourceError(f"cannot create work directory: {e}", self.base_dir) from e
        self._live.add(path)
        try:
            yield path
        except BaseException:
            # the error already in flight wins over a failed cleanup
            self._release(path, quiet=True)
            raise
        self._release(path)

    def _release(self, path: Path, quiet: bool = False) -> None:
        self._live.discard(path)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            if quiet:
                log.error("cannot remove work directory %s: %s", path, e)
                return
            raise ResourceError(f"cannot remove work directory {path}: {e}", str(path)) from e

    def close(self) -> None:
        for path in list(self._live):
            self._release(path)

    def __enter__(self) -> "EncoderSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ── Tool output parsing ────────────────────────────────────────────────────────

_LISTING_HEAD = re.compile(r"^\s*(\d+)\s+[0-9a-fA-F]{4,}\s+([0-9a-fA-F]+)(?:\s|$)")
_LISTING_TAIL = re.compile(r"^\s*(\d+)\s+([0-9a-fA-F]+)\s*$")
_DIAGNOSTIC   = re.compile(r"^.*?:(\d+):\s*(?:[Ff]atal )?(?:[Ee]rror|[Ww]arning):\s*(.*)$")


def parse_gas_listing(text: str) -> Dict[int, bytes]:
    """Map source line number → bytes emitted for it, in listing order."""
    result: Dict[int, bytearray] = {}
    current: Optional[int] = None
    for row in text.splitlines():
        mo = _LISTING_HEAD.match(row)
        if mo:
            current = int(mo.group(1))
            result.setdefault(current, bytearray()).extend(bytes.fromhex(mo.group(2)))
            continue
        mo = _LISTING_TAIL.match(row)
        if mo:
            line = int(mo.group(1))
            if line != current:
                raise ListingCorrelationError(
                    f"listing continuation row for line {line} follows line {current}"
                )
            result[line].extend(bytes.fromhex(mo.group(2)))
    return {line: bytes(data) for line, data in result.items()}


def parse_diagnostics(output: str) -> List[tuple[int, str]]:
    """``(line, message)`` for every ``file:line: error: message`` row."""
    found = []
    for row in output.splitlines():
        mo = _DIAGNOSTIC.match(row)
        if mo:
            found.append((int(mo.group(1)), mo.group(2).strip()))
    return found


# ── Backends ───────────────────────────────────────────────────────────────────

class Backend:
    """Produces opcode bytes for instruction text through one external tool."""
    name    = "backend"
    batched = False

    def __init__(self, executable: str, timeout: Optional[float] = None):
        self.executable = executable
        self.timeout    = timeout

    def encode(self, instructions: Sequence[Instruction],
               session: EncoderSession) -> List[bytes]:
        if self.batched:
            return self.encode_batch(instructions, session)
        return [self.encode_one(instr, session) for instr in instructions]

    def encode_one(self, instruction: Instruction, session: EncoderSession) -> bytes:
        raise NotImplementedError(f"{type(self).__name__} must implement encode_one")

    def encode_batch(self, instructions: Sequence[Instruction],
                     session: EncoderSession) -> List[bytes]:
        return [self.encode_one(instr, session) for instr in instructions]

    def _run(self, argv: List[str],
             instructions: Sequence[Instruction]) -> subprocess.CompletedProcess:
        log.debug("%s: %s", self.name, " ".join(argv))
        try:
            return subprocess.run(argv, capture_output=True, text=True,
                                  timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            first = instructions[0]
            raise EncodeError(first.line_number, first.text,
                              f"{self.name} timed out after {self.timeout}s") from e
        except OSError as e:
            raise EncoderUnavailable(self.name, str(e)) from e

    def _failure(self, proc: subprocess.CompletedProcess,
                 instructions: Sequence[Instruction], first_line: int) -> Exception:
        """Turn a failed run into the error for the offending instruction."""
        output = ((proc.stdout or "") + (proc.stderr or "")).strip()
        if not output:
            return EncoderUnavailable(self.name, f"exit status {proc.returncode}, no output")
        for line, message in parse_diagnostics(output):
            idx = line - first_line
            if 0 <= idx < len(instructions):
                instr = instructions[idx]
                return EncodeError(instr.line_number, instr.text, f"{self.name}: {message}")
        first = instructions[0]
        return EncodeError(first.line_number, first.text, f"{self.name}: {output}")


class YasmBackend(Backend):
    name = "yasm"

    def __init__(self, executable: str = "yasm", bits: int = 64,
                 timeout: Optional[float] = None):
        super().__init__(executable, timeout)
        self.bits = bits

    def encode_one(self, instruction: Instruction, session: EncoderSession) -> bytes:
        with session.workdir() as wd:
            src = wd / "instr.asm"
            out = wd / "instr.bin"
            src.write_text(f"[bits {self.bits}]\n{instruction.text}\n", encoding="utf-8")
            proc = self._run([self.executable, "-o", str(out), str(src)], [instruction])
            if proc.returncode != 0:
                raise self._failure(proc, [instruction], first_line=2)
            data = out.read_bytes() if out.exists() else b""
        if not data:
            raise EncodeError(instruction.line_number, instruction.text,
                              f"{self.name}: no bytes produced")
        return data


class GasBackend(Backend):
    """GNU as, batched: one source line per instruction, bytes read from the listing."""
    name    = "gas"
    batched = True

    def __init__(self, executable: str = "as",
                 preamble: Sequence[str] = (".intel_syntax noprefix",),
                 args: Sequence[str] = (),
                 timeout: Optional[float] = None,
                 name: Optional[str] = None):
        super().__init__(executable, timeout)
        self.preamble = list(preamble)
        self.args     = list(args)
        if name:
            self.name = name

    def encode_one(self, instruction: Instruction, session: EncoderSession) -> bytes:
        return self.encode_batch([instruction], session)[0]

    def encode_batch(self, instructions: Sequence[Instruction],
                     session: EncoderSession) -> List[bytes]:
        first_line = len(self.preamble) + 1
        with session.workdir() as wd:
            src = wd / "batch.s"
            obj = wd / "batch.o"
            lis = wd / "batch.lis"
            body = self.preamble + [instr.text for instr in instructions]
            src.write_text("\n".join(body) + "\n", encoding="utf-8")
            argv = [self.executable, *self.args, "-o", str(obj), f"-al={lis}", str(src)]
            proc = self._run(argv, instructions)
            if proc.returncode != 0:
                raise self._failure(proc, instructions, first_line)
            listing = parse_gas_listing(lis.read_text(encoding="utf-8", errors="replace"))
        return self.demux(listing, instructions, first_line)

    def demux(self, listing: Dict[int, bytes], instructions: Sequence[Instruction],
              first_line: int) -> List[bytes]:
        wanted = range(first_line, first_line + len(instructions))
        if set(listing) != set(wanted):
            raise ListingCorrelationError(
                f"{self.name} listing does not line up with the submitted instructions",
                len(instructions), len(listing),
            )
        return [listing[line] for line in wanted]


def default_backends(config: RewriteConfig) -> List[Backend]:
    """Ordered trial list for the configured architecture."""
    if config.arch == "arm64":
        return [GasBackend(config.gas, preamble=(), args=("-march=armv8-a+crypto",),
                           timeout=config.timeout, name="gas-arm64")]
    return [
        YasmBackend(config.yasm, bits=config.bits, timeout=config.timeout),
        GasBackend(config.gas,
                   preamble=(".intel_syntax noprefix", f".code{config.bits}"),
                   timeout=config.timeout),
    ]


# ── Adapter ────────────────────────────────────────────────────────────────────

class EncoderAdapter:
    def __init__(self, backends: Sequence[Backend],
                 session: Optional[EncoderSession] = None):
        self.backends = list(backends)
        self.session  = session or EncoderSession()

    @classmethod
    def from_config(cls, config: RewriteConfig) -> "EncoderAdapter":
        return cls(default_backends(config))

    def encode(self, instructions: Sequence[Instruction]) -> List[bytes]:
        """Bytes for every instruction, from the first backend that takes them all."""
        if not instructions:
            return []
        if not self.backends:
            raise EncoderUnavailable("oracle", "no backends configured")
        last_error: Exception | None = None
        for backend in self.backends:
            try:
                encodings = backend.encode(instructions, self.session)
            except (EncoderUnavailable, EncodeError) as e:
                log.info("%s failed (%s), trying next backend", backend.name, e)
                last_error = e
                continue
            if len(encodings) != len(instructions):
                raise ListingCorrelationError(
                    f"{backend.name} returned a different number of encodings",
                    len(instructions), len(encodings),
                )
            return encodings
        raise last_error

    def encode_one(self, instruction: Instruction) -> bytes:
        return self.encode([instruction])[0]

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "EncoderAdapter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
