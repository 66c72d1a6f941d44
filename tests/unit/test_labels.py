from replaykit.capture.labels import (
    LabelCache,
    LabelDetectionEngine,
    from_title,
    humanize_identifier,
    is_generic_label,
    is_numeric_label,
    sanitize_label,
)


def label_of(doc, selector, **kwargs):
    return LabelDetectionEngine(doc, doc, **kwargs).detect(doc.query(selector)[0])


# ---------- sanitization ----------


def test_sanitize_trims_punctuation_and_title_cases():
    assert sanitize_label("  submit:  ") == "Submit"
    assert sanitize_label("email\u200b address *") == "Email Address"
    assert sanitize_label(None) == ""
    assert sanitize_label(" -- ") == ""


def test_sanitize_drops_zero_width_characters_before_collapsing_spaces():
    assert sanitize_label("First \u200b Name") == "First Name"
    assert sanitize_label("Last\nname") == "Last Name"


def test_sanitize_truncates_and_strips_emoji():
    long = sanitize_label("a" * 60)
    assert len(long) == 50 and long.endswith("...")
    assert sanitize_label("\U0001F680 Launch", strip_emoji=True) == "Launch"


def test_humanize_identifier():
    assert humanize_identifier("btnSubmitOrder") == "submit order"
    assert humanize_identifier("first_name") == "first name"
    assert humanize_identifier("HTMLParser") == "html parser"
    assert humanize_identifier("btn") == "btn"


def test_numeric_labels():
    assert is_numeric_label("42")
    assert is_numeric_label("(1/3)")
    assert not is_numeric_label("Step 2")
    assert not is_numeric_label("--")


# ---------- heuristics ----------


def test_password_is_always_password(make_doc):
    doc = make_doc('<input type="password" aria-label="Secret sauce">')
    assert label_of(doc, "input") == "Password"


def test_aria_label_first(make_doc):
    doc = make_doc('<label for="q">Query</label><input id="q" aria-label="Search box" placeholder="Type">')
    assert label_of(doc, "#q") == "Search Box"


def test_aria_labelledby(make_doc):
    doc = make_doc('<h2 id="t">Shipping</h2><h3 id="s">address</h3><input aria-labelledby="t s">')
    assert label_of(doc, "input") == "Shipping Address"


def test_label_for_and_wrapping_label(make_doc):
    doc = make_doc(
        '<label for="e">Email address</label><input id="e">'
        '<label>Remember me <input type="checkbox" id="r"></label>'
    )
    assert label_of(doc, "#e") == "Email Address"
    assert label_of(doc, "#r") == "Remember Me"


def test_placeholder_beats_name(make_doc):
    doc = make_doc('<input name="txtFirstName" placeholder="Given name"><input name="txtFirstName">')
    first, second = doc.query("input")
    engine = LabelDetectionEngine(doc, doc)
    assert engine.detect(first) == "Given Name"
    assert engine.detect(second) == "First Name"


def test_visible_text_and_nested_media(make_doc):
    doc = make_doc('<button>  Save   changes </button><a href="/"><img alt="Home"></a>')
    assert label_of(doc, "button") == "Save Changes"
    assert label_of(doc, "a") == "Home"


def test_submit_input_uses_its_value(make_doc):
    doc = make_doc('<input type="submit" value="Send it">')
    assert label_of(doc, "input") == "Send It"


def test_table_cell_uses_column_header(make_doc):
    doc = make_doc(
        "<table>"
        "<tr><th>Name</th><th>Active</th></tr>"
        '<tr><td>Bob</td><td><input type="checkbox"></td></tr>'
        "</table>"
    )
    assert label_of(doc, "input") == "Active"


def test_numeric_candidate_uses_context(make_doc):
    doc = make_doc("<fieldset><legend>Quantity</legend><button>42</button></fieldset>")
    assert label_of(doc, "button") == "Quantity"


def test_synthetic_fallbacks(make_doc):
    doc = make_doc("<select><option>1</option></select>")
    assert label_of(doc, "select") == "Dropdown"
    doc = make_doc('<div><input type="checkbox"><input type="checkbox"><input type="checkbox"><input type="checkbox"></div>')
    assert label_of(doc, "input") == "Checkbox"


def test_raising_heuristic_counts_as_no_candidate(make_doc):
    def boom(ctx):
        raise RuntimeError("heuristic failed")

    doc = make_doc('<span title="Tooltip">x</span>')
    engine = LabelDetectionEngine(doc, doc, heuristics=[("boom", boom), ("title", from_title)])
    assert engine.detect(doc.query("span")[0]) == "Tooltip"


def test_long_labels_respect_engine_max_length(make_doc):
    doc = make_doc(f"<button>{'word ' * 30}</button>")
    label = label_of(doc, "button", max_length=20)
    assert len(label) == 20 and label.endswith("...")


def test_bootstrap_labels_away_from_the_control(make_doc):
    doc = make_doc(
        '<div class="form-floating"><input class="form-control" id="fe"><label>Email address</label></div>'
        '<div class="form-group"><div><label class="form-label">City</label></div><div><input id="city"></div></div>'
        '<div class="input-group"><span class="input-group-text">Amount</span><input id="amt">'
        '<span class="input-group-text">.00</span></div>'
    )
    assert label_of(doc, "#fe") == "Email Address"
    assert label_of(doc, "#city") == "City"
    assert label_of(doc, "#amt") == "Amount"


def test_material_ui_input_label(make_doc):
    doc = make_doc(
        '<div class="MuiFormControl-root MuiTextField-root">'
        '<label class="MuiInputLabel-root">Last name<span class="MuiInputLabel-asterisk"> *</span></label>'
        '<div class="MuiInputBase-root"><input class="MuiInputBase-input"></div>'
        "</div>"
    )
    assert label_of(doc, "input") == "Last Name"


def test_google_forms_option_label_beats_question_title(make_doc):
    doc = make_doc(
        '<div data-item-id="7">'
        '<div class="freebirdFormviewerComponentsQuestionBaseTitle">Shirt size</div>'
        '<div class="docssharedWizToggleLabeledContainer"><div><input type="radio" id="large"></div>'
        '<span class="docssharedWizToggleLabeledLabelText">Large</span></div>'
        '<div><div><input type="text" id="other"></div></div>'
        "</div>"
    )
    assert label_of(doc, "#large") == "Large"
    assert label_of(doc, "#other") == "Shirt Size"


def test_generic_words_on_fields_yield_to_better_candidates(make_doc):
    doc = make_doc(
        '<input id="a" placeholder="Enter" name="customerEmail">'
        '<input id="b" placeholder="Select">'
        '<fieldset><legend>Notes</legend><textarea placeholder="Type"></textarea></fieldset>'
        '<button>Submit</button>'
        '<input id="c" aria-label="Input">'
    )
    assert label_of(doc, "#a") == "Customer Email"
    assert label_of(doc, "#b") == "Select"
    assert label_of(doc, "textarea") == "Notes"
    assert label_of(doc, "button") == "Submit"
    assert label_of(doc, "#c") == "Input"
    assert is_generic_label(" Required ")
    assert not is_generic_label("Required field")


# ---------- cache ----------


def test_cache_serves_until_fingerprint_changes(make_doc):
    doc = make_doc('<button aria-label="Save">S</button>')
    node = doc.query("button")[0]
    engine = LabelDetectionEngine(doc, doc)

    assert engine.detect(node, cache_key="k") == "Save"
    assert len(engine.cache) == 1

    doc.set_attribute(node, "aria-label", "Store")
    assert engine.detect(node, cache_key="k") == "Store"


def test_cache_is_bounded_lru():
    cache = LabelCache(max_size=2)
    fp = LabelCache.fingerprint("a", {})
    cache.put("one", fp, "One")
    cache.put("two", fp, "Two")
    assert cache.get("one", fp) == "One"  # refreshes "one"
    cache.put("three", fp, "Three")
    assert cache.get("two", fp) is None
    assert cache.get("one", fp) == "One"
    assert len(cache) == 2


def test_zero_sized_cache_stores_nothing():
    cache = LabelCache(max_size=0)
    cache.put("k", LabelCache.fingerprint("a", {}), "A")
    assert len(cache) == 0
