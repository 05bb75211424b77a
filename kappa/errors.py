from __future__ import annotations

from typing import Optional

from kappa.types.srcloc import SrcLoc


class KappaError(Exception):
    """ Base class for all Kappa errors"""
    pass


class KappaParseError(KappaError):
    """ Raised when source text is malformed or incomplete"""

    def __init__(self, message: str, remainder: str = "", loc: Optional[SrcLoc] = None):
        super().__init__(message)
        self.message = message
        self.remainder = remainder
        self.loc = loc

    def __str__(self) -> str:
        if self.loc is not None:
            return f"{self.loc}: {self.message}"
        return self.message


class KappaCompileError(KappaError):
    """ Raised when a form has the wrong shape, or a macro cannot be expanded"""

    def __init__(self, message: str, loc: Optional[SrcLoc] = None):
        super().__init__(message)
        self.message = message
        self.loc = loc

    def __str__(self) -> str:
        if self.loc is not None:
            return f"{self.loc}: {self.message}"
        return f"unknown: {self.message}"


class KappaRuntimeError(KappaError):
    """ Raised by the VM when a program fails while running"""


class KappaUnboundSymbol(KappaRuntimeError):
    """ Raised when a symbol is looked up before it is bound"""


class KappaArityError(KappaRuntimeError):
    """ Raised when the number of arguments passed to a function is incorrect"""


class KappaTypeError(KappaRuntimeError):
    """ Raised when a builtin receives a value of the wrong kind"""


class KappaStackUnderflow(KappaRuntimeError):
    """ Raised when an instruction needs more operands than the stack holds"""


class KappaStepLimitError(KappaRuntimeError):
    """ Raised when a run exhausts its step budget"""


class KappaInternalError(KappaError):
    """ Raised when a VM invariant is broken (missing frame, unknown environment id)"""
