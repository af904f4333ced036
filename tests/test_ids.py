import re

from financeai.core.ids import random_suffix, timestamped_id
from financeai.features.imports.service import AIImportService
from financeai.features.reports.service import AIReportService


def test_random_suffix_is_base36():
    assert re.fullmatch(r"[0-9a-z]{6}", random_suffix())
    assert len(random_suffix(10)) == 10


def test_timestamped_id_format():
    assert re.fullmatch(r"msg-\d{13}-[0-9a-z]{6}", timestamped_id("msg"))


def test_services_share_the_id_format():
    assert re.fullmatch(r"ai-report-\d{13}-[0-9a-z]{6}", AIReportService.generate_report_id())
    assert re.fullmatch(r"ai-import-\d{13}-[0-9a-z]{6}", AIImportService.generate_import_id())
