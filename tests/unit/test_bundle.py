import copy

import pytest

from replaykit.capture.bundle import BundleBuilder, assess_quality
from replaykit.core.models import LocatorBundle


def test_builder_collects_every_signal(make_doc):
    doc = make_doc(
        '<form><input id="email" name="email" type="email" placeholder="Email" '
        'class="field css-1abc" data-testid="email-input" aria-label="Email address" onclick="x()"></form>',
        url="https://shop.test/login",
    )
    bundle = BundleBuilder(doc, doc).build(doc.query("#email")[0])

    assert bundle.tag == "input"
    assert bundle.id == "email" and bundle.name == "email"
    assert bundle.placeholder == "Email"
    assert bundle.accessible_name == "Email address"
    assert bundle.classes == frozenset({"field", "css-1abc"})
    assert bundle.data_attributes == {"data-testid": "email-input"}
    assert bundle.attributes["type"] == "email"
    assert "onclick" not in bundle.attributes
    assert bundle.xpath == "/form/input"
    assert bundle.css == "#email"
    assert bundle.rect is not None and bundle.rect.area > 0
    assert bundle.page_url == "https://shop.test/login"
    assert bundle.boundary_chain == ()
    assert bundle.text is None


def test_accessible_name_from_labelledby(make_doc):
    doc = make_doc('<span id="n">Card  holder</span><input aria-labelledby="n">')
    assert BundleBuilder(doc, doc).build(doc.query("input")[0]).accessible_name == "Card holder"


def test_password_value_is_never_recorded(make_doc):
    doc = make_doc('<input type="password" name="pw" value="hunter2">')
    report = BundleBuilder(doc, doc).build_with_report(doc.query("input")[0])
    assert "value" not in report.bundle.attributes
    assert report.label == "Password"


def test_text_is_collapsed_and_truncated(make_doc):
    doc = make_doc("<p>  lots\n of    words here </p><input type='submit' value='Send'>")
    builder = BundleBuilder(doc, doc, max_text_length=10)
    assert builder.build(doc.query("p")[0]).text == "lots of wo"
    assert builder.build(doc.query("input")[0]).text == "Send"


def test_hidden_element_gets_no_rect(make_doc):
    doc = make_doc('<div hidden><button id="b">x</button></div>')
    assert BundleBuilder(doc, doc).build(doc.query("#b")[0]).rect is None


def test_boundary_chain_through_iframe_and_shadow_root(make_doc):
    doc = make_doc(
        '<iframe id="first" srcdoc="<p>x</p>"></iframe>'
        """<iframe id="outer" srcdoc="<div id='host'><template shadowrootmode='open'><input id='deep'></template></div>"></iframe>"""
    )
    outer = doc.enter(doc.query("#outer")[0])
    shadow = doc.enter(doc.query("#host", outer)[0])
    bundle = BundleBuilder(doc, doc).build(doc.query("#deep", shadow)[0])

    assert [h.kind for h in bundle.boundary_chain] == ["iframe", "shadow"]
    iframe_hop, shadow_hop = bundle.boundary_chain
    assert iframe_hop.id == "outer" and iframe_hop.index == 1
    assert iframe_hop.xpath == "/iframe[2]"
    assert shadow_hop.id == "host" and shadow_hop.index == 0
    assert bundle.xpath == "/input"


def test_report_scores_quality(make_doc):
    doc = make_doc('<div>plain</div><button id="go" name="go" data-qa="go">Go</button>')
    builder = BundleBuilder(doc, doc)

    weak = builder.build_with_report(doc.query("div")[0])
    strong = builder.build_with_report(doc.query("#go")[0])
    assert strong.quality > weak.quality
    assert any("no id or name" in w for w in weak.warnings)
    assert strong.label == "Go"


def test_quality_of_bare_bundle():
    score, warnings = assess_quality(LocatorBundle(tag="div", xpath="/div"))
    assert score == 0.0
    assert len(warnings) == 3


def test_bundle_attributes_cannot_be_changed_in_place():
    bundle = LocatorBundle(tag="input", xpath="/form/input", attributes={"data-testid": "email"})
    with pytest.raises(TypeError):
        bundle.attributes["data-testid"] = "other"
    with pytest.raises(TypeError):
        bundle.attributes.update({"x": "1"})
    with pytest.raises(TypeError):
        LocatorBundle(tag="div", xpath="/div").attributes["x"] = "1"

    assert bundle.attributes == {"data-testid": "email"}
    assert bundle.model_dump()["attributes"] == {"data-testid": "email"}
    assert copy.deepcopy(bundle).attributes == bundle.attributes
