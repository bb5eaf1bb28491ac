"""
Tests for attribute extraction: rule precedence, plausibility ranges and
record analysis.
"""

import pytest

import extractor
from catalog import CatalogRecord
from equivalence import CALIBER_FAMILIES
from extractor import (
    DIMENSIONS,
    AttributeSet,
    analyze_record,
    barrel_length_inches,
    capacity_rounds,
    extract_action,
    extract_barrel_length,
    extract_caliber,
    extract_capacity,
    extract_firearm_type,
    extract_name_attributes,
    self_test_extraction,
)


def test_built_in_checks_pass():
    assert self_test_extraction() == []


#  Precedence

class TestPrecedence:
    def test_caliber_and_capacity_from_luger_name(self):
        attrs = extract_name_attributes("9MM LUGER 15RD")
        assert attrs['caliber'] == '9MM LUGER'
        assert attrs['capacity'] == '15'

    def test_metric_compound_wins_over_bare_decimal(self):
        # '7.62X39' must not fall through to the bare 7.62 rule
        assert extract_caliber("SKS 7.62X39 20\" RIFLE") == '7.62X39'

    def test_first_occurrence_within_rule(self):
        assert extract_capacity("10RD AND 15RD MAGAZINES") == '10'

    def test_compound_capacity_before_single(self):
        assert extract_capacity("SHOTGUN 5+1 RDS") == '5+1'

    def test_semi_auto_before_automatic(self):
        assert extract_action("AR15 SEMI-AUTOMATIC 5.56") == 'SEMI-AUTO'


#  Caliber

class TestCaliber:
    @pytest.mark.parametrize("name, expected", [
        ("S&W M&P SHIELD 40 S&W 7RD", "40 S&W"),
        ("RUGER LCP MAX 380 ACP", "380 ACP"),
        ("KIMBER MICRO 9 9MM PARA", "9MM LUGER"),
        ("MARLIN 336 30-30 WIN LEVER", "30-30 WIN"),
        ("AERO M4E1 300 BLK 16\"", "300 BLACKOUT"),
        ("BENELLI NOVA 20 GAUGE", "20 GAUGE"),
        ("RUGER GP100 38/357 MAG 4\"", "357 MAGNUM"),
        ("GLOCK 20 10MM AUTO 15RD", "10MM AUTO"),
        # Multi-word suffixes keep the word that names the cartridge
        ("RUGER SUPER REDHAWK 44 REM MAG 7.5\" 6RD REVOLVER", "44 MAGNUM"),
        ("HENRY 22 WIN MAG LEVER RIFLE", "22 WMR"),
        ("S&W 642 38 S&W SPECIAL 1.875\" REVOLVER", "357 MAGNUM"),
        ("SAVAGE 110 6.5CM 24\"", "6.5 CREEDMOOR"),
    ])
    def test_extract(self, name, expected):
        assert extract_caliber(name) == expected

    @pytest.mark.parametrize("canonical, member", [
        (canonical, member)
        for canonical, members in CALIBER_FAMILIES.items()
        for member in members
    ])
    def test_every_registered_spelling_is_extractable(self, canonical, member):
        assert extract_caliber(member) == canonical

    @pytest.mark.parametrize("name", ["SIG P226 LEGION", "HOLSTER OWB BLACK", "TACTICAL SLING 30CM", ""])
    def test_absent(self, name):
        assert extract_caliber(name) is None

    def test_non_string_input(self):
        assert extract_caliber(None) is None


#  Barrel length

class TestBarrelLength:
    @pytest.mark.parametrize("name, expected", [
        ('GLOCK 19 4.02" 15RD', '4.02"'),
        ("HENRY H001 22LR 18.25''", '18.25"'),
        ("REMINGTON 870 12GA 28 INCHES", '28"'),
        ("SAVAGE AXIS 243 WIN 22-INCH", '22"'),
        ("CZ 457 22LR 20 BARREL", '20"'),
        ('S&W 686 357 MAG 6” REVOLVER', '6"'),
    ])
    def test_extract(self, name, expected):
        assert extract_barrel_length(name) == expected

    def test_implausible_length_is_absent(self):
        assert extract_barrel_length('DISPLAY CASE 48"') is None

    def test_model_number_is_not_a_barrel(self):
        assert extract_barrel_length('P226"') is None


#  Capacity

class TestCapacity:
    @pytest.mark.parametrize("name, expected", [
        ("GLOCK 19 15RD", "15"),
        ("GLOCK 17 17 RDS", "17"),
        ("MOSSBERG 500 6 SHOT", "6"),
        ("SIG P365 10+1RD", "10+1"),
        ("BERETTA 92 15-ROUND", "15"),
    ])
    def test_extract(self, name, expected):
        assert extract_capacity(name) == expected

    def test_implausible_capacity_is_absent(self):
        assert extract_capacity("AMMO CAN 500RD") is None

    def test_no_marker_no_capacity(self):
        assert extract_capacity("GLOCK 19 9MM") is None


#  Action and type

class TestActionAndType:
    @pytest.mark.parametrize("name, expected", [
        ("MOSSBERG 500 PUMP ACTION 12GA", "PUMP"),
        ("HENRY LEVER ACTION 30-30", "LEVER"),
        ("STOEGER O/U 12GA", "BREAK"),
        ("S&W 642 DAO 38 SPL", "DAO"),
        ("COLT SINGLE ACTION ARMY", "SINGLE-ACTION"),
    ])
    def test_action(self, name, expected):
        assert extract_action(name) == expected

    @pytest.mark.parametrize("name, expected", [
        ("TAURUS 605 357 MAG REVOLVER", "REVOLVER"),
        ("KEL-TEC SUB-2000 CARBINE 9MM", "RIFLE"),
        ("PSA AR-10 308 WIN", "AR-10"),
        ("CENTURY ARMS AK-47 7.62X39", "AK"),
        ("SPRINGFIELD 1911 45ACP", "1911"),
        ("DERRINGER 22 MAG", "PISTOL"),
    ])
    def test_firearm_type(self, name, expected):
        assert extract_firearm_type(name) == expected


#  Helpers

class TestNumericHelpers:
    @pytest.mark.parametrize("value, expected", [('4.5"', 4.5), ('20"', 20.0), ('', None), (None, None), ('abc', None)])
    def test_barrel_length_inches(self, value, expected):
        assert barrel_length_inches(value) == expected

    @pytest.mark.parametrize("value, expected", [('15', 15), ('10+1', 10), (None, None), ('x', None)])
    def test_capacity_rounds(self, value, expected):
        assert capacity_rounds(value) == expected


#  Record analysis

class TestAnalyzeRecord:
    def test_full_record(self):
        record = CatalogRecord(
            product_id=1,
            name='GLOCK 19 9MM LUGER 4.02" 15RD STRIKER-FIRED PISTOL',
            manufacturer='Glock Inc',
            category='Handguns',
            department='01',
            weight=1.5,
        )
        attrs = analyze_record(record)
        assert attrs == AttributeSet(
            product_id=1,
            name=record.name,
            caliber='9MM LUGER',
            barrel_length='4.02"',
            capacity='15',
            action='STRIKER-FIRED',
            firearm_type='PISTOL',
            manufacturer='GLOCK',
            category='HANDGUNS',
            department='01',
            weight=1.5,
        )

    def test_name_without_attributes_keeps_passthrough_fields(self):
        record = CatalogRecord(product_id=9, name='UNMARKED ITEM', manufacturer='Glock', category='Handguns')
        attrs = analyze_record(record)
        assert all(getattr(attrs, dim) is None for dim in DIMENSIONS)
        assert not attrs.has_extracted_attributes()
        assert attrs.manufacturer == 'GLOCK'
        assert attrs.category == 'HANDGUNS'

    @pytest.mark.parametrize("weight", [0, -1.0, float('nan'), 'heavy', None])
    def test_unusable_weight_is_absent(self, weight):
        record = CatalogRecord(product_id=1, name='X', weight=weight)
        assert analyze_record(record).weight is None

    def test_extraction_failure_keeps_record(self, monkeypatch):
        def explode(name, registry):
            raise RuntimeError("bad pattern")

        monkeypatch.setattr(extractor, 'extract_name_attributes', explode)
        record = CatalogRecord(product_id=3, name='GLOCK 19 9MM', manufacturer='Glock', category='Handguns')
        attrs = analyze_record(record)
        assert attrs.product_id == 3
        assert attrs.caliber is None
        assert attrs.manufacturer == 'GLOCK'

    def test_manufacturer_failure_falls_back_to_raw_value(self, monkeypatch):
        def explode(manufacturer):
            raise RuntimeError("alias table broken")

        monkeypatch.setattr(extractor, 'normalize_manufacturer', explode)
        record = CatalogRecord(product_id=4, name='GLOCK 19 9MM', manufacturer=' Glock Inc ', category='Handguns')
        attrs = analyze_record(record)
        assert attrs.product_id == 4
        assert attrs.manufacturer == 'GLOCK INC'
        assert attrs.category == 'HANDGUNS'
