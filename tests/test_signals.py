import signal

from hostprobe.signals import Signal, signal_number, supported_signals


def test_kill_number():
    assert signal_number(Signal.KILL) == 9


def test_term_number():
    assert signal_number(Signal.TERM) == 15


def test_abort_and_iot_share_a_number():
    assert signal_number(Signal.ABORT) == signal_number(Signal.IOT)


def test_number_matches_stdlib():
    assert signal_number(Signal.INTERRUPT) == int(signal.SIGINT)
    assert signal_number(Signal.HANGUP) == int(signal.SIGHUP)


def test_supported_signals_all_have_numbers():
    supported = supported_signals()
    assert Signal.KILL in supported
    assert Signal.TERM in supported
    assert all(isinstance(signal_number(sig), int) for sig in supported)


def test_supported_signals_keep_declaration_order():
    supported = supported_signals()
    order = list(Signal)
    assert [order.index(sig) for sig in supported] == sorted(order.index(sig) for sig in supported)