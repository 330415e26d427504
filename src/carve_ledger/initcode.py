"""Minimal init-code runner.

Executes the straight-line subset of host opcodes that bootstrap prefixes are
built from and returns the bytes the code asks the host to store. There are no
jumps, so every run terminates after at most ``len(code)`` steps.
"""
from __future__ import annotations

WORD = 1 << 256
STACK_LIMIT = 1024
DEFAULT_MAX_MEMORY = 1 << 20  # 1 MiB

STOP = 0x00
ADD = 0x01
SUB = 0x03
CODESIZE = 0x38
CODECOPY = 0x39
RETURNDATASIZE = 0x3D
POP = 0x50
PUSH0 = 0x5F
PUSH32 = 0x7F
DUP1 = 0x80
DUP16 = 0x8F
SWAP1 = 0x90
SWAP16 = 0x9F
RETURN = 0xF3
REVERT = 0xFD
INVALID = 0xFE


class InitCodeError(Exception):
    """Init code halted abnormally; nothing may be stored."""


class _Machine:
    def __init__(self, code: bytes, max_memory: int):
        self.code = code
        self.max_memory = max_memory
        self.stack: list[int] = []
        self.memory = bytearray()

    def push(self, value: int) -> None:
        if len(self.stack) >= STACK_LIMIT:
            raise InitCodeError("stack overflow")
        self.stack.append(value % WORD)

    def pop(self, pc: int) -> int:
        if not self.stack:
            raise InitCodeError(f"stack underflow at pc={pc}")
        return self.stack.pop()

    def reserve(self, offset: int, size: int) -> None:
        if size == 0:
            return
        end = offset + size
        if end > self.max_memory:
            raise InitCodeError(f"memory access {end} exceeds limit {self.max_memory}")
        if end > len(self.memory):
            # Memory grows in 32-byte words.
            words = (end + 31) // 32
            self.memory.extend(bytes(words * 32 - len(self.memory)))

    def run(self) -> bytes:
        code = self.code
        pc = 0
        while pc < len(code):
            op = code[pc]

            if op == STOP:
                return b""
            elif op == ADD:
                a, b = self.pop(pc), self.pop(pc)
                self.push(a + b)
            elif op == SUB:
                a, b = self.pop(pc), self.pop(pc)
                self.push(a - b)
            elif op == POP:
                self.pop(pc)
            elif op == CODESIZE:
                self.push(len(code))
            elif op == RETURNDATASIZE:
                # No calls are ever made, so the return buffer is always empty.
                self.push(0)
            elif op == CODECOPY:
                dest, src, size = self.pop(pc), self.pop(pc), self.pop(pc)
                self.reserve(dest, size)
                chunk = code[src:src + size] if src < len(code) else b""
                # Reads past the end of code are zero-filled.
                self.memory[dest:dest + size] = chunk + bytes(size - len(chunk))
            elif PUSH0 <= op <= PUSH32:
                n = op - PUSH0
                imm = code[pc + 1:pc + 1 + n]
                self.push(int.from_bytes(imm + bytes(n - len(imm)), "big"))
                pc += n
            elif DUP1 <= op <= DUP16:
                n = op - DUP1 + 1
                if len(self.stack) < n:
                    raise InitCodeError(f"stack underflow at pc={pc}")
                self.push(self.stack[-n])
            elif SWAP1 <= op <= SWAP16:
                n = op - SWAP1 + 1
                if len(self.stack) < n + 1:
                    raise InitCodeError(f"stack underflow at pc={pc}")
                self.stack[-1], self.stack[-1 - n] = self.stack[-1 - n], self.stack[-1]
            elif op == RETURN:
                offset, size = self.pop(pc), self.pop(pc)
                self.reserve(offset, size)
                return bytes(self.memory[offset:offset + size])
            elif op == REVERT:
                self.pop(pc)
                self.pop(pc)
                raise InitCodeError(f"init code reverted at pc={pc}")
            elif op == INVALID:
                raise InitCodeError(f"invalid opcode at pc={pc}")
            else:
                raise InitCodeError(f"unsupported opcode 0x{op:02x} at pc={pc}")
            pc += 1

        # Falling off the end behaves like STOP.
        return b""


def run_initcode(code: bytes, max_memory: int = DEFAULT_MAX_MEMORY) -> bytes:
    """Run ``code`` as init code and return the runtime bytes it produces."""
    return _Machine(bytes(code), max_memory).run()
