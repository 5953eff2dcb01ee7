from sshlink.listeners import StatusListeners


def test_notify_reaches_all_listeners():
    listeners = StatusListeners()
    a: list[bool] = []
    b: list[bool] = []
    listeners.subscribe(a.append)
    listeners.subscribe(b.append)

    listeners.notify(True)

    assert a == [True]
    assert b == [True]


def test_failing_listener_does_not_block_others():
    listeners = StatusListeners()
    seen: list[bool] = []

    def broken(connected: bool) -> None:
        raise RuntimeError("boom")

    listeners.subscribe(broken)
    listeners.subscribe(seen.append)

    listeners.notify(False)

    assert seen == [False]


def test_unsubscribe_is_idempotent():
    listeners = StatusListeners()
    seen: list[bool] = []
    unsubscribe = listeners.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    listeners.notify(True)

    assert seen == []
    assert len(listeners) == 0


def test_same_callback_twice_has_independent_subscriptions():
    listeners = StatusListeners()
    seen: list[bool] = []
    first = listeners.subscribe(seen.append)
    listeners.subscribe(seen.append)

    listeners.notify(True)
    first()
    listeners.notify(False)

    assert seen == [True, True, False]


def test_listener_may_unsubscribe_during_dispatch():
    listeners = StatusListeners()
    seen: list[bool] = []
    unsubscribe = None

    def once(connected: bool) -> None:
        seen.append(connected)
        unsubscribe()

    unsubscribe = listeners.subscribe(once)

    listeners.notify(True)
    listeners.notify(False)

    assert seen == [True]
