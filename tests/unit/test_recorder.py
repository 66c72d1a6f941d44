import threading

from replaykit.capture.recorder import CaptureSession, Debouncer, Throttler
from replaykit.core.models import EventKind
from replaykit.utils.timing import SystemClock

FORM = """
<form>
  <input id="q" placeholder="Search">
  <input id="agree" type="checkbox" checked>
  <select id="country"><option value="fr">France</option><option value="de" selected>Germany</option></select>
  <button id="go">Go</button>
</form>
"""


def session_for(doc, clock, **kwargs):
    return CaptureSession(doc, doc, clock=clock, throttle_ms=100, debounce_ms=500, **kwargs).start()


def test_typing_is_debounced_to_the_final_value(make_doc, clock):
    doc = make_doc(FORM)
    q = doc.query("#q")[0]
    session = session_for(doc, clock)

    session.record_input(q, "a")
    clock.advance(40)
    session.record_input(q, "ab")
    clock.advance(40)
    session.record_input(q, "abc")

    clock.advance(499)
    assert session.steps == []
    clock.advance(1)

    assert len(session.steps) == 1
    step = session.steps[0]
    assert step.event == EventKind.input and step.value == "abc"
    assert clock.now_ms() == 580
    assert step.label == "Search"


def test_click_burst_is_throttled(make_doc, clock):
    doc = make_doc(FORM)
    go = doc.query("#go")[0]
    session = session_for(doc, clock)

    for _ in range(10):
        session.record_click(go, 10, 10)
        clock.advance(5)
    assert len(session.steps) == 1
    assert session.steps[0].x == 10

    clock.advance(100)
    assert session.record_click(go) is not None
    assert len(session.steps) == 2


def test_stop_flushes_pending_input(make_doc, clock):
    doc = make_doc(FORM)
    session = session_for(doc, clock)
    session.record_input(doc.query("#q")[0], "late")

    steps = session.stop()
    assert [s.value for s in steps] == ["late"]
    assert clock.pending == 0
    assert not session.active


def test_discrete_controls_record_immediately(make_doc, clock):
    doc = make_doc(FORM)
    session = session_for(doc, clock)

    session.record_input(doc.query("#agree")[0])
    session.record_input(doc.query("#country")[0])
    assert [s.value for s in session.steps] == ["true", "de"]


def test_enter_flushes_the_fields_text_first(make_doc, clock):
    doc = make_doc(FORM)
    q = doc.query("#q")[0]
    session = session_for(doc, clock)

    session.record_input(q, "shoes")
    assert session.record_keydown(q, "a") is None
    session.record_keydown(q, "Enter")
    assert [s.event for s in session.steps] == [EventKind.input, EventKind.enter]
    assert session.steps[0].value == "shoes"


def test_navigation_step(make_doc, clock):
    doc = make_doc(FORM)
    session = session_for(doc, clock)
    session.record_input(doc.query("#q")[0], "x")

    nav = session.record_navigation("https://shop.test/cart")
    assert [s.event for s in session.steps] == [EventKind.input, EventKind.navigate]
    assert nav.bundle.page_url == "https://shop.test/cart"
    assert nav.bundle.tag == "html"
    assert nav.value == "https://shop.test/cart"
    assert nav.label == "Navigate To https://shop.test/cart"


def test_step_ids_and_callback(make_doc, clock):
    doc = make_doc(FORM)
    seen = []
    session = session_for(doc, clock, on_step=seen.append)
    session.record_click(doc.query("#go")[0])
    session.record_navigation("https://shop.test/")
    assert [s.id for s in seen] == ["step-1", "step-2"]


def test_debounced_input_reads_the_page_on_the_notifying_thread(make_doc, monkeypatch):
    doc = make_doc(FORM)
    q = doc.query("#q")[0]
    published = threading.Event()
    session = CaptureSession(doc, doc, clock=SystemClock(), debounce_ms=20, on_step=lambda step: published.set())

    build = session.builder.build_with_report
    build_threads = []

    def tracking_build(node):
        build_threads.append(threading.current_thread())
        return build(node)

    monkeypatch.setattr(session.builder, "build_with_report", tracking_build)
    session.start()

    session.record_input(q, "shoes")
    doc.remove(q)
    assert published.wait(5)
    session.stop()

    assert build_threads == [threading.current_thread()]
    assert len(session.steps) == 1
    assert session.steps[0].value == "shoes"
    assert session.steps[0].label == "Search"


def test_inactive_session_ignores_notifications(make_doc, clock):
    doc = make_doc(FORM)
    session = CaptureSession(doc, doc, clock=clock)
    assert session.record_click(doc.query("#go")[0]) is None
    session.record_input(doc.query("#q")[0], "x")
    clock.advance(1000)
    assert session.steps == []


def test_attach_reports_every_boundary(make_doc, clock):
    doc = make_doc('<iframe id="f" srcdoc="<p>x</p>"></iframe>')
    scopes = []
    with CaptureSession(doc, doc, clock=clock, attach=scopes.append) as session:
        assert session.active
        doc.insert_html(doc.root(), """<iframe id="g" srcdoc="<p>y</p>"></iframe>""")
    assert [k.kind for k in scopes] == ["document", "iframe", "iframe"]


def test_input_inside_iframe_is_keyed_apart_from_same_path_outside(make_doc, clock):
    doc = make_doc("""<input id="outer"><iframe id="f" srcdoc="<input id='inner'>"></iframe>""")
    outer = doc.query("#outer")[0]
    inner = doc.query("#inner", doc.enter(doc.query("#f")[0]))[0]
    session = session_for(doc, clock)

    session.record_input(outer, "1")
    session.record_input(inner, "2")
    session.stop()
    assert sorted(s.value for s in session.steps) == ["1", "2"]


# ---------- primitives ----------


def test_throttler_per_key(clock):
    t = Throttler(clock, 100)
    assert t.accept("click")
    assert t.accept("enter")
    assert not t.accept("click")
    clock.advance(100)
    assert t.accept("click")


def test_debouncer_flush_and_cancel(clock):
    fired = []
    d = Debouncer(clock, 500)
    d.submit("a", lambda: fired.append("a1"))
    d.submit("a", lambda: fired.append("a2"))
    d.submit("b", lambda: fired.append("b"))
    assert d.pending == 2

    assert d.flush("a") == 1
    assert fired == ["a2"]

    d.cancel_all()
    clock.advance(1000)
    assert fired == ["a2"]
    assert d.pending == 0
