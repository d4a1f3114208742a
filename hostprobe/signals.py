"""Signals that can be sent to processes, and their numbers on this host."""

from __future__ import annotations

import enum
import signal as _signal
from typing import Optional


class Signal(enum.Enum):
    """A process signal, independent of its platform number."""

    HANGUP = "SIGHUP"
    INTERRUPT = "SIGINT"
    QUIT = "SIGQUIT"
    ILLEGAL = "SIGILL"
    TRAP = "SIGTRAP"
    ABORT = "SIGABRT"
    IOT = "SIGIOT"
    BUS = "SIGBUS"
    FLOATING_POINT_EXCEPTION = "SIGFPE"
    KILL = "SIGKILL"
    USER1 = "SIGUSR1"
    SEGV = "SIGSEGV"
    USER2 = "SIGUSR2"
    PIPE = "SIGPIPE"
    ALARM = "SIGALRM"
    TERM = "SIGTERM"
    CHILD = "SIGCHLD"
    CONTINUE = "SIGCONT"
    STOP = "SIGSTOP"
    TSTP = "SIGTSTP"
    TTIN = "SIGTTIN"
    TTOU = "SIGTTOU"
    URGENT = "SIGURG"
    XCPU = "SIGXCPU"
    XFSZ = "SIGXFSZ"
    VIRTUAL_ALARM = "SIGVTALRM"
    PROFILING = "SIGPROF"
    WINCH = "SIGWINCH"
    IO = "SIGIO"
    POLL = "SIGPOLL"
    POWER = "SIGPWR"
    SYS = "SIGSYS"


def signal_number(signal: Signal) -> Optional[int]:
    """Return the host's number for *signal*, or ``None`` if the host lacks it."""
    number = getattr(_signal, signal.value, None)
    return None if number is None else int(number)


def supported_signals() -> list[Signal]:
    """Return every signal this host can deliver, in declaration order."""
    return [sig for sig in Signal if signal_number(sig) is not None]