"""
Unit tests for bidirectional record links.
"""

import pytest

from qms_workflow.core.errors import DanglingLinkError, RecordValidationError
from qms_workflow.engine.linkage import find_dangling_links, link_records, unlink_records

from .factories import make_capa, make_mrb, make_ncr, make_scar


class TestLink:

    def test_ncr_to_capa_sets_both_sides(self):
        ncr, capa = make_ncr(), make_capa()
        new_ncr, new_capa = link_records(ncr, capa)
        assert new_ncr.capa_number == capa.number
        assert new_capa.source_ncr_number == ncr.number
        assert new_capa.source_ncr_id == ncr.id
        assert ncr.capa_number is None
        assert find_dangling_links([new_ncr, new_capa]) == []

    def test_ncr_to_scar(self):
        new_ncr, new_scar = link_records(make_ncr(), make_scar())
        assert new_ncr.scar_number == new_scar.number
        assert new_scar.source_ncr_number == new_ncr.number

    def test_mrb_to_capa(self):
        new_mrb, new_capa = link_records(make_mrb(), make_capa())
        assert new_mrb.capa_number == new_capa.number
        assert new_capa.mrb_number == new_mrb.number

    def test_mrb_collects_several_ncrs(self):
        first, second = make_ncr("NCR-2026-0001"), make_ncr("NCR-2026-0002")
        first, mrb = link_records(first, make_mrb())
        second, mrb = link_records(second, mrb)
        assert mrb.linked_ncr_numbers == ["NCR-2026-0001", "NCR-2026-0002"]
        assert mrb.source_ncr_number == "NCR-2026-0001"
        assert find_dangling_links([first, second, mrb]) == []

    def test_already_linked(self):
        ncr, capa = link_records(make_ncr(), make_capa())
        with pytest.raises(RecordValidationError):
            link_records(ncr, capa)

    def test_parent_slot_taken(self):
        ncr, _ = link_records(make_ncr(), make_capa("CAPA-2026-0001"))
        with pytest.raises(DanglingLinkError):
            link_records(ncr, make_capa("CAPA-2026-0002"))

    def test_child_already_has_a_parent(self):
        _, capa = link_records(make_ncr("NCR-2026-0001"), make_capa())
        with pytest.raises(DanglingLinkError):
            link_records(make_ncr("NCR-2026-0002"), capa)

    def test_unsupported_pair(self):
        with pytest.raises(RecordValidationError):
            link_records(make_capa(), make_ncr())

    def test_one_sided_reference_is_reported(self):
        ncr = make_ncr(capa_number="CAPA-2026-0001")
        with pytest.raises(DanglingLinkError):
            link_records(ncr, make_capa())
        problems = find_dangling_links([ncr, make_capa()])
        assert problems == [{"record": ncr.number, "field": "capa_number", "references": "CAPA-2026-0001"}]


class TestUnlink:

    def test_unlink_clears_both_sides(self):
        ncr, capa = link_records(make_ncr(), make_capa())
        ncr, capa = unlink_records(ncr, capa)
        assert ncr.capa_number is None
        assert capa.source_ncr_number is None
        assert capa.source_ncr_id is None

    def test_unlink_mrb_promotes_next_source(self):
        first, mrb = link_records(make_ncr("NCR-2026-0001"), make_mrb())
        second, mrb = link_records(make_ncr("NCR-2026-0002"), mrb)
        first, mrb = unlink_records(first, mrb)
        assert mrb.linked_ncr_numbers == ["NCR-2026-0002"]
        assert mrb.source_ncr_number == "NCR-2026-0002"
        assert first.mrb_number is None

    def test_unlink_unlinked(self):
        with pytest.raises(RecordValidationError):
            unlink_records(make_ncr(), make_capa())
