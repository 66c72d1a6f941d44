from unittest import mock

import pytest

import replaykit.dom.playwright_host as ph
from replaykit.core.errors import ActionRejected
from replaykit.core.executor import ReplayActionExecutor
from replaykit.core.models import EventKind, LocatorBundle, Rect, ResolutionOutcome, Step
from replaykit.utils.config import Settings
from replaykit.utils.timing import ManualClock


def handle(element=None):
    h = mock.Mock()
    h.as_element.return_value = element
    return h


def array_of(*elements):
    props = {str(i): handle(el) for i, el in enumerate(elements)}
    props["length"] = handle(None)
    # property order from the page is not guaranteed
    array = mock.Mock()
    array.get_properties.return_value = dict(reversed(list(props.items())))
    return array


@pytest.fixture
def page():
    p = mock.Mock()
    p.url = "https://shop.test/"
    return p


def element(state=None):
    el = mock.Mock()
    el.evaluate.side_effect = lambda script, *args: (
        {"connected": True, **(state or {})} if script == ph.JS_STATE else True
    )
    return el


def test_elements_are_returned_in_index_order():
    a, b, c = object(), object(), object()
    assert ph._elements(array_of(a, b, c)) == [a, b, c]


def test_query_runs_css_or_xpath_script_against_the_scope_root(page):
    host = ph.PlaywrightHost(page)
    found = object()
    page.main_frame.evaluate_handle.return_value = array_of(found)

    assert host.query("#email") == [found]
    page.main_frame.evaluate_handle.assert_called_with(ph.JS_QUERY, [None, "#email"])

    shadow = object()
    scope = ph.PlaywrightScope(frame=page.main_frame, root=shadow, kind="shadow")
    host.query("/form/input", scope, xpath=True)
    page.main_frame.evaluate_handle.assert_called_with(ph.JS_XPATH, [shadow, "/form/input"])


def test_bounding_rect_handles_unrendered_nodes(page):
    host = ph.PlaywrightHost(page)
    el = mock.Mock()
    el.bounding_box.return_value = {"x": 1, "y": 2, "width": 30, "height": 40}
    assert host.bounding_rect(el) == Rect(x=1, y=2, width=30, height=40)
    el.bounding_box.return_value = None
    assert host.bounding_rect(el) == Rect()


def test_dispatch_passes_event_details_to_the_page(page):
    host = ph.PlaywrightHost(page)
    el = element()
    assert host.dispatch(el, "click", x=5, y=6, modifiers=("Shift",)) is True
    el.evaluate.assert_called_with(ph.JS_DISPATCH, ["click", 5, 6, None, ["Shift"]])


def test_dispatch_on_disabled_or_detached_element_is_rejected(page):
    host = ph.PlaywrightHost(page)
    with pytest.raises(ActionRejected, match="disabled"):
        host.dispatch(element({"disabled": True}), "click")
    with pytest.raises(ActionRejected, match="detached"):
        host.dispatch(element({"connected": False}), "focus")


def test_readonly_blocks_value_writes_only(page):
    host = ph.PlaywrightHost(page)
    el = element({"readonly": True})
    with pytest.raises(ActionRejected, match="read-only"):
        host.set_controlled_value(el, "x")

    host.set_controlled_value(el, True, prop="checked")
    el.evaluate.assert_called_with(ph.JS_SET_VALUE, ["checked", True])


def test_navigate_waits_for_dom_content(page):
    ph.PlaywrightHost(page).navigate("https://shop.test/cart")
    page.goto.assert_called_once_with("https://shop.test/cart", wait_until="domcontentloaded")


def test_observe_delivers_mutations_until_unsubscribed(page):
    host = ph.PlaywrightHost(page)
    scope = host.root()
    seen = []

    stop = host.observe(scope, lambda added, removed: seen.append((added, removed)))
    host.observe(scope, lambda added, removed: None)
    page.expose_binding.assert_called_once_with(ph.BINDING_NAME, host._on_mutation, handle=True)
    page.main_frame.evaluate.assert_any_call(ph.JS_OBSERVE, [None, ph.BINDING_NAME, 1])

    new = object()
    payload = mock.Mock()
    token = mock.Mock()
    token.json_value.return_value = 1
    payload.get_property.side_effect = {"token": token, "added": array_of(new), "removed": array_of()}.get
    host._on_mutation(None, payload)
    assert seen == [([new], [])]

    stop()
    page.main_frame.evaluate.assert_called_with(ph.JS_DISCONNECT, 1)
    payload.get_property.side_effect = {"token": token, "added": array_of(new), "removed": array_of()}.get
    host._on_mutation(None, payload)
    assert len(seen) == 1


def test_enter_iframe_uses_its_content_frame(page):
    host = ph.PlaywrightHost(page)
    iframe = mock.Mock()
    iframe.evaluate.return_value = "iframe"
    inner = mock.Mock()
    iframe.content_frame.return_value = inner

    scope = host.enter(iframe)
    assert scope.frame is inner
    assert scope.kind == "iframe" and scope.host is iframe


def test_scope_of_a_top_level_node_is_the_page_document(page):
    host = ph.PlaywrightHost(page)
    el = mock.Mock()
    el.owner_frame.return_value = page.main_frame
    el.evaluate_handle.return_value.evaluate.return_value = True

    scope = host.scope_of(el)
    assert scope.kind == "document" and scope.host is None
    assert host.boundary_hosts(el) == []


def test_open_page_launches_the_configured_browser(monkeypatch):
    p = mock.Mock()
    launcher = mock.MagicMock()
    launcher.return_value.__enter__.return_value = p
    monkeypatch.setattr(ph, "sync_playwright", launcher)

    browser = p.firefox.launch.return_value
    with ph.open_page("https://shop.test/", settings=Settings(BROWSER_TYPE="firefox")) as host:
        assert isinstance(host, ph.PlaywrightHost)
        assert host.page is browser.new_page.return_value

    p.firefox.launch.assert_called_once_with(headless=True, slow_mo=0)
    host.page.goto.assert_called_once_with("https://shop.test/", wait_until="domcontentloaded")
    browser.close.assert_called_once()


def test_select_by_option_text_writes_the_option_value(page):
    host = ph.PlaywrightHost(page)
    select, germany, france = element(), mock.Mock(), mock.Mock()
    tags = {select: "SELECT", germany: "OPTION", france: "OPTION"}
    attrs = {select: {"id": "country"}, germany: {"value": "de"}, france: {"value": "fr"}}
    texts = {germany: "Germany", france: "France"}

    inspector = mock.Mock()
    inspector.tag_name.side_effect = tags.get
    inspector.attributes.side_effect = attrs.get
    inspector.children.side_effect = lambda node: [germany, france] if node is select else []
    inspector.text_content.side_effect = lambda node, exclude=None: texts.get(node, "")
    inspector.property.return_value = "de"

    finder = mock.Mock()
    finder.options.timeout_ms = 2000
    finder.find.return_value = ResolutionOutcome(node=select, strategy="id", attempts=1)

    ex = ReplayActionExecutor(finder, host, inspector, clock=ManualClock(), strict_verify=True, step_timeout_ms=0)
    bundle = LocatorBundle(tag="select", xpath="/form/select", id="country")
    result = ex.execute(Step(id="s1", event=EventKind.input, bundle=bundle, value="Germany"))

    select.evaluate.assert_any_call(ph.JS_SET_VALUE, ["value", "de"])
    assert result.success and result.verified is True
