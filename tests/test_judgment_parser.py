from __future__ import annotations

from datetime import date

import pytest

from app.db.models import CaseType, RiskLevel
from app.services.judgment_parser import (
    classify_case_type,
    extract_parties,
    generate_summary,
    parse_judgment,
    roc_date_to_date,
    roc_date_to_iso,
)
from helpers import SAMPLE_TEXT, make_payload


@pytest.mark.parametrize(
    "value, expected",
    [
        ("1130101", date(2024, 1, 1)),
        ("0890229", date(2000, 2, 29)),
        (1121231, date(2023, 12, 31)),
        (" 1130315 ", date(2024, 3, 15)),
    ],
)
def test_roc_dates(value, expected):
    assert roc_date_to_date(value) == expected


@pytest.mark.parametrize("value", [None, "", "113011", "20240101", "1130230", "1131301", "113-01-01", "abcdefg"])
def test_invalid_roc_dates_are_none(value):
    assert roc_date_to_date(value) is None


def test_roc_date_iso():
    assert roc_date_to_iso("1130101") == "2024-01-01"
    assert roc_date_to_iso("bad") is None


@pytest.mark.parametrize(
    "case_number, expected",
    [
        ("112年度訴字第1號民事判決", CaseType.civil),
        ("112年度易字第2號刑事判決", CaseType.criminal),
        ("112年度訴字第3號行政判決", CaseType.administrative),
        ("112年度家親聲字第4號裁定", CaseType.other),
        (None, None),
        ("", None),
    ],
)
def test_case_type(case_number, expected):
    assert classify_case_type(case_number) == expected


def test_parties_from_leading_lines():
    assert extract_parties(SAMPLE_TEXT) == "原告 甲股份有限公司; 被告 乙股份有限公司; 被告應給付原告新臺幣壹佰萬元。; 原告主張被告違約未付貨款，雙方債務糾紛迄未解決。"


def test_parties_only_scans_first_twenty_lines():
    text = "\n".join(["主文"] * 20 + ["原告 甲"])
    assert extract_parties(text) is None
    assert extract_parties("上訴人 丙\n被上訴人 丁") == "上訴人 丙; 被上訴人 丁"


def test_summary_collapses_whitespace_and_marks_truncation():
    assert generate_summary("原告\n  甲   公司") == "原告 甲 公司"
    long_text = "判" * 250
    assert generate_summary(long_text) == "判" * 200 + "..."
    assert generate_summary("判" * 200) == "判" * 200
    assert generate_summary(None) is None


def test_parse_full_record():
    parsed = parse_judgment(make_payload("J1"), "J1")
    assert parsed.case_number == "112年度訴字第1234號民事判決"
    assert parsed.judgment_date == date(2024, 1, 1)
    assert parsed.case_type == CaseType.civil
    assert parsed.court_name == "臺灣臺北地方法院"
    assert parsed.full_text == SAMPLE_TEXT
    assert parsed.parties.startswith("原告 甲股份有限公司")
    assert parsed.summary.startswith("臺灣臺北地方法院民事判決 原告")
    # 違約, 債務, 糾紛 -> three medium keywords
    assert parsed.risk_level == RiskLevel.MEDIUM


def test_stored_text_is_truncated_but_risk_uses_full_text():
    text = "甲" * 5000 + "被告涉犯詐欺及洗錢"
    parsed = parse_judgment(make_payload("J1", text=text), "J1")
    assert len(parsed.full_text) == 5000
    assert "詐欺" not in parsed.full_text
    assert parsed.risk_level == RiskLevel.HIGH


def test_bad_date_only_blanks_that_field():
    parsed = parse_judgment(make_payload("J1", jdate="11301"), "J1")
    assert parsed.judgment_date is None
    assert parsed.case_type == CaseType.civil
    assert parsed.full_text == SAMPLE_TEXT


def test_field_failure_is_isolated():
    class Exploding:
        def __str__(self):
            raise RuntimeError("cannot render")

    raw = make_payload("J1")
    raw["JCASE"] = Exploding()
    parsed = parse_judgment(raw, "J1")
    assert parsed.case_number is None
    assert parsed.case_type is None
    assert parsed.judgment_date == date(2024, 1, 1)
    assert parsed.summary is not None


def test_older_payload_layout():
    raw = {"JCASE": "刑事判決", "JDATE": "1120505", "JFULLX": {"JFULLCONTENT": "被告犯詐欺罪\n背信"}}
    parsed = parse_judgment(raw, "J2")
    assert parsed.full_text == "被告犯詐欺罪\n背信"
    assert parsed.case_type == CaseType.criminal
    assert parsed.risk_level == RiskLevel.HIGH


def test_non_object_payload_never_raises():
    parsed = parse_judgment(["unexpected"], "J3")
    assert parsed.case_number is None
    assert parsed.full_text is None
    assert parsed.risk_level == RiskLevel.MEDIUM
