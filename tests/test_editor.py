import pymupdf
import pytest

from exactedit import config
from exactedit.editor import (
    PageEditSession,
    PageStage,
    Replacement,
    apply_exact_edits,
    apply_replacements,
    group_edits_by_page,
    list_page_runs,
)
from exactedit.errors import (
    ByteLengthMismatch,
    FontEncodingUnavailable,
    GlyphCountMismatch,
    InvalidDocument,
    PageNotFound,
    RunNotFound,
    UnencodableCharacter,
    UnsupportedStreamStructure,
)
from exactedit.models import ExactTextEdit
from pdfs import CMAP_AB, content_streams, contents_xrefs


def edit(source_index, original_text, text, page=1, **kwargs):
    return {
        "pageNumber": page,
        "sourceIndex": source_index,
        "originalText": original_text,
        "text": text,
        **kwargs,
    }


def test_same_length_literal_replacement(hello_pdf):
    out = apply_exact_edits(hello_pdf, [edit(0, "Hello", "World")])
    assert content_streams(out) == [b"BT /F1 12 Tf 100 700 Td (World) Tj ET"]


def test_longer_replacement_is_rejected(hello_pdf):
    with pytest.raises(ByteLengthMismatch) as exc_info:
        apply_exact_edits(hello_pdf, [edit(0, "Hello", "Hello!")])
    assert exc_info.value.page_number == 1
    assert exc_info.value.kind == "ByteLengthMismatch"


def test_tj_element_replacement(builder):
    builder.add_page(
        [b"BT /F1 12 Tf 72 700 Td [(Sub) -15 (total)] TJ ET"], {"F1": builder.simple_font()}
    )
    pdf = builder.tobytes()
    with pytest.raises(ByteLengthMismatch):
        apply_exact_edits(pdf, [edit(1, "total", "amount")])
    out = apply_exact_edits(pdf, [edit(1, "total", "tally")])
    assert content_streams(out) == [b"BT /F1 12 Tf 72 700 Td [(Sub) -15 (tally)] TJ ET"]


def test_cmap_font_hex_replacement(builder):
    builder.add_page([b"BT /F2 10 Tf 50 500 Td <0041> Tj ET"], {"F2": builder.type0_font(CMAP_AB)})
    out = apply_exact_edits(builder.tobytes(), [edit(0, "A", "B")])
    assert content_streams(out) == [b"BT /F2 10 Tf 50 500 Td <0042> Tj ET"]


def test_cmap_font_rejects_unmapped_character(builder):
    builder.add_page([b"BT /F2 10 Tf <00410042> Tj ET"], {"F2": builder.type0_font(CMAP_AB)})
    with pytest.raises(UnencodableCharacter):
        apply_exact_edits(builder.tobytes(), [edit(0, "AB", "AZ")])


def test_curly_apostrophe_is_not_replaced_by_straight_one(builder):
    cmap = b"beginbfchar\n<0001> <0049>\n<0002> <0074>\n<0003> <0027>\n<0004> <0073>\nendbfchar"
    stream = b"BT /F1 10 Tf <0001000200030004> Tj ET"
    builder.add_page([stream], {"F1": builder.type0_font(cmap)})
    pdf = builder.tobytes()
    with pytest.raises(UnencodableCharacter):
        apply_exact_edits(pdf, [edit(0, "It's", "It\u2019s")])
    out = apply_exact_edits(pdf, [edit(0, "It's", "Its'")])
    assert content_streams(out) == [b"BT /F1 10 Tf <0001000200040003> Tj ET"]


def test_duplicate_text_resolved_by_position(builder):
    stream = (
        b"BT /F1 12 Tf 100 700 Td (Alpha) Tj 0 -100 Td (Total) Tj "
        b"200 -400 Td (Other) Tj 0 -20 Td (Total) Tj ET"
    )
    builder.add_page([stream], {"F1": builder.simple_font()})
    out = apply_exact_edits(builder.tobytes(), [edit(7, "Total", "Grand", x=300, y=180)])
    assert content_streams(out) == [stream.replace(b"-20 Td (Total)", b"-20 Td (Grand)")]


def test_identity_font_without_tounicode(builder, monkeypatch):
    builder.add_page([b"BT /F3 12 Tf 10 10 Td <00410042> Tj ET"], {"F3": builder.type0_font()})
    pdf = builder.tobytes()
    with pytest.raises(FontEncodingUnavailable):
        apply_exact_edits(pdf, [edit(0, "AB", "CD")])

    monkeypatch.setattr(config, "ALLOW_IDENTITY_WITHOUT_TOUNICODE", True)
    out = apply_exact_edits(pdf, [edit(0, "AB", "CD")])
    assert content_streams(out) == [b"BT /F3 12 Tf 10 10 Td <00430044> Tj ET"]


def test_glyph_count_mismatch_with_multi_byte_codes(builder):
    cmap = b"beginbfchar\n<01> <0041>\n<0203> <0042>\nendbfchar"
    builder.add_page([b"BT /F1 10 Tf <0203> Tj ET"], {"F1": builder.type0_font(cmap)})
    # "AA" is two one-byte codes, same byte length as one two-byte code
    with pytest.raises(GlyphCountMismatch):
        apply_exact_edits(builder.tobytes(), [edit(0, "B", "AA")])


def test_several_edits_in_one_stream_with_escaping(builder):
    builder.add_page(
        [b"BT /F1 12 Tf 10 10 Td (xyz) Tj (abc) Tj (pqr) Tj ET"], {"F1": builder.simple_font()}
    )
    out = apply_exact_edits(builder.tobytes(), [edit(0, "xyz", "x(z"), edit(2, "pqr", "p\nr")])
    assert content_streams(out) == [b"BT /F1 12 Tf 10 10 Td (x\\(z) Tj (abc) Tj (p\\nr) Tj ET"]


def test_duplicate_edits_take_distinct_runs(builder):
    builder.add_page(
        [b"BT /F1 12 Tf (Total) Tj (Total) Tj ET"], {"F1": builder.simple_font()}
    )
    pdf = builder.tobytes()
    out = apply_exact_edits(pdf, [edit(0, "Total", "Sum 1"), edit(0, "Total", "Sum 2")])
    assert content_streams(out) == [b"BT /F1 12 Tf (Sum 1) Tj (Sum 2) Tj ET"]
    with pytest.raises(RunNotFound):
        apply_exact_edits(pdf, [edit(0, "Total", f"Sum {n}") for n in range(3)])


@pytest.mark.parametrize("contents", ["array", "indirect"])
def test_multi_stream_page_repoints_only_patched_stream(builder, contents):
    builder.add_page(
        [b"BT /F1 12 Tf 10 700 Td (First) Tj ET", b"BT /F1 12 Tf 10 600 Td (Second) Tj ET"],
        {"F1": builder.simple_font()},
        contents=contents,
    )
    pdf = builder.tobytes()
    before = contents_xrefs(pdf)
    out = apply_exact_edits(pdf, [edit(1, "Second", "Fourth")])
    after = contents_xrefs(out)
    assert after[0] == before[0]
    assert after[1] != before[1]
    assert content_streams(out) == [
        b"BT /F1 12 Tf 10 700 Td (First) Tj ET",
        b"BT /F1 12 Tf 10 600 Td (Fourth) Tj ET",
    ]


def test_untouched_objects_are_preserved(builder):
    font = builder.simple_font()
    builder.add_page([b"BT /F1 12 Tf (Hello) Tj ET"], {"F1": font})
    pdf = builder.tobytes()
    out = apply_exact_edits(pdf, [edit(0, "Hello", "Jello")])
    with pymupdf.open(stream=pdf, filetype="pdf") as a, pymupdf.open(stream=out, filetype="pdf") as b:
        assert a.xref_object(font) == b.xref_object(font)
        assert a.page_count == b.page_count


def test_failure_on_a_later_page_aborts_the_call(builder):
    font = builder.simple_font()
    builder.add_page([b"BT /F1 12 Tf (One) Tj ET"], {"F1": font})
    builder.add_page([b"BT /F1 12 Tf (Two) Tj ET"], {"F1": font})
    with pytest.raises(RunNotFound) as exc_info:
        apply_exact_edits(
            builder.tobytes(), [edit(0, "One", "Uno"), edit(0, "Three", "Tres", page=2)]
        )
    assert exc_info.value.page_number == 2


def test_edits_on_two_pages(builder):
    font = builder.simple_font()
    builder.add_page([b"BT /F1 12 Tf (One) Tj ET"], {"F1": font})
    builder.add_page([b"BT /F1 12 Tf (Two) Tj ET"], {"F1": font})
    out = apply_exact_edits(builder.tobytes(), [edit(0, "Two", "Dos", page=2), edit(0, "One", "Uno")])
    assert content_streams(out, 0) == [b"BT /F1 12 Tf (Uno) Tj ET"]
    assert content_streams(out, 1) == [b"BT /F1 12 Tf (Dos) Tj ET"]


def test_page_out_of_range(hello_pdf):
    with pytest.raises(PageNotFound) as exc_info:
        apply_exact_edits(hello_pdf, [edit(0, "Hello", "World", page=2)])
    assert exc_info.value.page_number == 2


def test_no_edits_returns_input(hello_pdf):
    assert apply_exact_edits(hello_pdf, []) is hello_pdf


def test_accepts_model_instances(hello_pdf):
    out = apply_exact_edits(
        hello_pdf, [ExactTextEdit(page_number=1, source_index=0, original_text="Hello", text="Help!")]
    )
    assert content_streams(out) == [b"BT /F1 12 Tf 100 700 Td (Help!) Tj ET"]


def test_invalid_document():
    with pytest.raises(InvalidDocument):
        apply_exact_edits(b"this is not a pdf at all", [edit(0, "a", "b")])


def test_contents_that_is_not_a_stream(builder):
    page = builder.add_page([b"BT ET"], {"F1": builder.simple_font()})
    builder.doc.xref_set_key(page.xref, "Contents", "<</Foo 1>>")
    with pytest.raises(UnsupportedStreamStructure):
        apply_exact_edits(builder.tobytes(), [edit(0, "a", "b")])


def test_session_stages(hello_pdf):
    with pymupdf.open(stream=hello_pdf, filetype="pdf") as doc:
        session = PageEditSession(doc, 1)
        assert session.stage is PageStage.IDLE
        session.run([ExactTextEdit(page_number=1, source_index=0, original_text="Hello", text="Howdy")])
        assert session.stage is PageStage.STREAMS_PATCHED

        failing = PageEditSession(doc, 1)
        with pytest.raises(RunNotFound):
            failing.run([ExactTextEdit(page_number=1, source_index=0, original_text="Nope", text="Nada")])
        assert failing.stage is PageStage.ABORTED


def test_apply_replacements_back_to_front():
    reps = [
        Replacement(0, 2, 4, b"XYZ"),
        Replacement(0, 6, 7, b""),
        Replacement(0, 0, 1, b"A"),
    ]
    assert apply_replacements(b"0123456789", reps) == b"A1XYZ45789"


def test_group_edits_by_page_keeps_order():
    edits = [
        ExactTextEdit(page_number=3, source_index=0, text="a"),
        ExactTextEdit(page_number=1, source_index=5, text="b"),
        ExactTextEdit(page_number=3, source_index=1, text="c"),
    ]
    grouped = group_edits_by_page(edits)
    assert list(grouped) == [1, 3]
    assert [e.text for e in grouped[3]] == ["a", "c"]


def test_list_page_runs(builder):
    builder.add_page(
        [b"BT /F1 12 Tf 5 6 Td (Hi) Tj ET", b"BT /F2 9 Tf <00410042> Tj ET"],
        {"F1": builder.simple_font(), "F2": builder.type0_font(CMAP_AB)},
    )
    runs = list_page_runs(builder.tobytes(), 1)
    assert [(r.text, r.stream_index, r.editable, r.position) for r in runs] == [
        ("Hi", 0, True, (5.0, 6.0)),
        ("AB", 1, True, (0.0, 0.0)),
    ]
