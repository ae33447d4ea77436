import asyncio

import pytest
from conftest import make_element

from voyager.errors import ElementNotFound, InvalidArgs, NotConnected, ProtectedTarget, ProtocolError, UnknownAction
from voyager.models import Click, Done, Navigate, Scroll, Type, Wait
from voyager.protocol import ProtocolSession, SessionState, is_protected_url


async def connected_session(host, config, tab_id=101) -> ProtocolSession:
    session = ProtocolSession(tab_id, host, host, config)
    await session.connect()
    return session


@pytest.mark.parametrize(
    "url,protected",
    [
        ("chrome://settings", True),
        ("chrome-extension://abc/popup.html", True),
        ("devtools://devtools/bundled/inspector.html", True),
        ("edge://flags", True),
        ("https://example.com", False),
        ("", False),
    ],
)
def test_is_protected_url(url, protected):
    assert is_protected_url(url) is protected


@pytest.mark.asyncio
async def test_connect_attaches_and_enables_page(host, config):
    session = await connected_session(host, config)

    assert session.connected
    assert host.attach_calls == [101]
    assert host.methods() == ["Page.enable"]


@pytest.mark.asyncio
async def test_connect_refuses_protected_tab(host, config):
    host.add_tab(1, 102, "chrome://settings")
    session = ProtocolSession(102, host, host, config)

    with pytest.raises(ProtectedTarget):
        await session.connect()
    assert host.attach_calls == []
    assert session.state is SessionState.UNATTACHED


@pytest.mark.asyncio
async def test_connect_to_missing_tab(host, config):
    session = ProtocolSession(999, host, host, config)

    with pytest.raises(NotConnected):
        await session.connect()


@pytest.mark.asyncio
async def test_attach_failure_leaves_session_unattached(host, config):
    host.fail_attach = RuntimeError("Another debugger is already attached")
    session = ProtocolSession(101, host, host, config)

    with pytest.raises(NotConnected):
        await session.connect()
    assert not session.connected


@pytest.mark.asyncio
async def test_session_is_single_use(host, config):
    session = await connected_session(host, config)
    await session.disconnect()

    with pytest.raises(NotConnected):
        await session.connect()


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(host, config):
    session = await connected_session(host, config)

    await session.disconnect()
    await session.disconnect()

    assert host.detach_calls == [101]
    assert session.state is SessionState.UNATTACHED


@pytest.mark.asyncio
async def test_send_without_connection_raises(host, config):
    session = ProtocolSession(101, host, host, config)

    with pytest.raises(NotConnected):
        await session.send("Page.enable")
    assert host.commands == []


@pytest.mark.asyncio
async def test_mark_detached_drops_session_without_detach_call(host, config):
    session = await connected_session(host, config)

    session.mark_detached()

    assert not session.connected
    await session.disconnect()
    assert host.detach_calls == []


@pytest.mark.asyncio
async def test_capture_screenshot_reads_viewport(host, config):
    session = await connected_session(host, config)

    shot = await session.capture_screenshot()

    assert shot.data == "iVBORw0KGgo="
    assert (shot.width, shot.height) == (1280, 720)


@pytest.mark.asyncio
async def test_click_dispatches_at_element_center(host, config):
    session = await connected_session(host, config)
    elements = [make_element(1), make_element(2, left=10, top=20, width=100, height=30)]

    await session.execute_action(Click(element_id=2), elements)

    events = [p for m, p in host.input_commands()]
    assert [e["type"] for e in events] == ["mouseMoved", "mousePressed", "mouseReleased"]
    assert all((e["x"], e["y"]) == (60, 35) for e in events)
    assert events[1]["button"] == "left" and events[1]["clickCount"] == 1


@pytest.mark.asyncio
async def test_click_at_coordinates(host, config):
    session = await connected_session(host, config)

    await session.execute_action(Click(x=12.4, y=7.6))

    assert [(p["x"], p["y"]) for _, p in host.input_commands()] == [(12, 8)] * 3


@pytest.mark.asyncio
async def test_click_unknown_element_sends_nothing(host, config):
    session = await connected_session(host, config)

    with pytest.raises(ElementNotFound):
        await session.execute_action(Click(element_id=7), [make_element(0)])
    assert host.input_commands() == []


@pytest.mark.parametrize(
    "action",
    [Type(text="hello", element_id=9), Scroll(direction="down", element_id=9)],
    ids=["type", "scroll"],
)
@pytest.mark.asyncio
async def test_unknown_element_sends_nothing(host, config, action):
    session = await connected_session(host, config)

    with pytest.raises(ElementNotFound):
        await session.execute_action(action, [make_element(0)])
    assert host.input_commands() == []


@pytest.mark.asyncio
async def test_click_without_target(host, config):
    session = await connected_session(host, config)

    with pytest.raises(InvalidArgs):
        await session.execute_action(Click())


@pytest.mark.asyncio
async def test_type_into_element_focuses_selects_then_inserts(host, config):
    session = await connected_session(host, config)

    await session.execute_action(Type(text="hello", element_id=0), [make_element(0)])

    commands = host.input_commands()
    assert [m for m, _ in commands] == [
        "Input.dispatchMouseEvent",
        "Input.dispatchMouseEvent",
        "Input.dispatchMouseEvent",
        "Input.dispatchKeyEvent",
        "Input.dispatchKeyEvent",
        "Input.dispatchKeyEvent",
        "Input.dispatchKeyEvent",
        "Input.insertText",
    ]
    key_events = [p for m, p in commands if m == "Input.dispatchKeyEvent"]
    assert [(e["type"], e["key"]) for e in key_events] == [
        ("rawKeyDown", "Control"),
        ("rawKeyDown", "a"),
        ("keyUp", "a"),
        ("keyUp", "Control"),
    ]
    assert key_events[1]["modifiers"] == 2
    assert key_events[1]["commands"] == ["selectAll"]
    assert commands[-1][1] == {"text": "hello"}


@pytest.mark.asyncio
async def test_select_all_uses_configured_modifier(host, config):
    config.select_all_modifier = "Meta"
    session = await connected_session(host, config)

    await session.select_all()

    key_events = [p for _, p in host.input_commands()]
    assert key_events[0]["key"] == "Meta"
    assert key_events[1]["modifiers"] == 4


@pytest.mark.asyncio
async def test_type_without_element_inserts_only(host, config):
    session = await connected_session(host, config)

    await session.execute_action(Type(text="abc"))

    assert host.input_commands() == [("Input.insertText", {"text": "abc"})]


@pytest.mark.asyncio
async def test_type_requires_text(host, config):
    session = await connected_session(host, config)

    with pytest.raises(InvalidArgs):
        await session.execute_action(Type(text="", element_id=0), [make_element(0)])
    assert host.input_commands() == []


@pytest.mark.asyncio
async def test_scroll_window_uses_default_point(host, config):
    session = await connected_session(host, config)

    await session.execute_action(Scroll(direction="up"))

    (method, params), = host.input_commands()
    assert method == "Input.dispatchMouseEvent"
    assert params["type"] == "mouseWheel"
    assert (params["x"], params["y"], params["deltaY"]) == (400, 300, -300)


@pytest.mark.asyncio
async def test_scroll_element_anchors_on_center(host, config):
    session = await connected_session(host, config)

    await session.execute_action(Scroll(direction="down", element_id=0, amount=120), [make_element(0, 0, 0, 200, 100)])

    (_, params), = host.input_commands()
    assert (params["x"], params["y"], params["deltaY"]) == (100, 50, 120)


@pytest.mark.asyncio
async def test_scroll_rejects_bad_direction(host, config):
    session = await connected_session(host, config)

    with pytest.raises(InvalidArgs):
        await session.execute_action(Scroll(direction="left"))


@pytest.mark.asyncio
async def test_navigate_sends_page_navigate(host, config):
    session = await connected_session(host, config)

    await session.execute_action(Navigate(url="https://example.org"))

    assert host.commands[-1][1:] == ("Page.navigate", {"url": "https://example.org"})


@pytest.mark.asyncio
async def test_navigate_error_text_raises(host, config):
    host.responses["Page.navigate"] = {"errorText": "net::ERR_NAME_NOT_RESOLVED"}
    session = await connected_session(host, config)

    with pytest.raises(ProtocolError):
        await session.execute_action(Navigate(url="https://nope.invalid"))


@pytest.mark.asyncio
async def test_navigate_requires_url(host, config):
    session = await connected_session(host, config)

    with pytest.raises(InvalidArgs):
        await session.execute_action(Navigate(url=""))


@pytest.mark.asyncio
async def test_wait_returns_early_when_cancelled(host, config):
    session = await connected_session(host, config)
    cancel = asyncio.Event()
    cancel.set()

    await asyncio.wait_for(session.execute_action(Wait(duration_ms=60_000), cancel=cancel), timeout=1)


@pytest.mark.asyncio
async def test_done_sends_nothing(host, config):
    session = await connected_session(host, config)

    await session.execute_action(Done())

    assert host.methods() == ["Page.enable"]


@pytest.mark.asyncio
async def test_unknown_action(host, config):
    session = await connected_session(host, config)

    with pytest.raises(UnknownAction):
        await session.execute_action(object())
