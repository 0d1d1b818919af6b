from tractcall.alignment import (
    AlignedRow,
    AlignmentMatrix,
    Cell,
    CellKind,
    cells_from_text,
    open_insertion_columns,
    render,
    with_insertion,
)
from tractcall.realign import RealignedRead


def _pending(bases: str):
    return [Cell(CellKind.PENDING, b) for b in bases]


def _row(pre: str, core, post: str) -> AlignedRow:
    core_cells = cells_from_text(core) if isinstance(core, str) else core
    return AlignedRow(pre=cells_from_text(pre), core=core_cells, post=cells_from_text(post))


def test_cell_text_alphabet():
    cells = [
        Cell(CellKind.BASE, "A"),
        Cell(CellKind.GAP),
        Cell(CellKind.OUT),
        Cell(CellKind.SOFT, "C"),
        Cell(CellKind.PENDING, "G"),
    ]
    assert render(cells) == "A-xSg"


def test_single_insertion_opens_gap_column_in_other_rows():
    ref = cells_from_text("CACACACACA")
    read = cells_from_text("CACAC") + _pending("AC") + cells_from_text("ACACA")
    opened = open_insertion_columns([ref, read])
    assert opened == 2
    assert render(ref) == "CACAC--ACACA"
    assert render(read) == "CACACACACACA"


def test_different_insertion_lengths_share_columns():
    ref = cells_from_text("CACACACACA")
    a = cells_from_text("CACAC") + _pending("AC") + cells_from_text("ACACA")
    b = cells_from_text("CACAC") + _pending("A") + cells_from_text("ACACA")
    open_insertion_columns([ref, a, b])
    assert render(ref) == "CACAC--ACACA"
    assert render(a) == "CACACACACACA"
    assert render(b) == "CACACA-ACACA"
    assert len({len(ref), len(a), len(b)}) == 1


def test_matrix_synchronises_every_segment_and_counts_alleles():
    reference = _row("GGTT", "CACACACACA", "TTGG")
    plain = _row("GGTT", "CACACACACA", "TTGG")
    inserted = _row("GGTT", cells_from_text("CACAC") + _pending("AC") + cells_from_text("ACACA"), "TTGG")
    matrix = AlignmentMatrix(reference, [plain, inserted]).build()

    assert matrix.reference.texts() == ("GGTT", "CACAC--ACACA", "TTGG")
    assert matrix.widths() == (4, 12, 4)
    for row in matrix.rows:
        assert (len(row.pre), len(row.core), len(row.post)) == matrix.widths()
    assert matrix.allele_length(0) == 10
    assert matrix.allele_length(1) == 10
    assert matrix.allele_length(2) == 12


def test_insertion_after_core_moves_into_core():
    core = cells_from_text("CACACACACA")
    core[-1] = with_insertion(core[-1], "CA")
    read = RealignedRead(pre=cells_from_text("GGTT"), core=core, post=cells_from_text("TTGG"))
    rendered = read.render()
    assert rendered.texts() == ("GGTT", "CACACACACA", "caTTGG")

    matrix = AlignmentMatrix(_row("GGTT", "CACACACACA", "TTGG"), [rendered]).build()
    assert matrix.reference.texts() == ("GGTT", "CACACACACA--", "TTGG")
    assert matrix.rows[1].texts() == ("GGTT", "CACACACACACA", "TTGG")
    assert matrix.allele_length(1) == 12


def test_build_is_idempotent():
    reference = _row("GG", "CACA", "TT")
    read = _row("GG", cells_from_text("CA") + _pending("T") + cells_from_text("CA"), "TT")
    matrix = AlignmentMatrix(reference, [read])
    matrix.build()
    matrix.build()
    assert matrix.reference.texts() == ("GG", "CA-CA", "TT")
