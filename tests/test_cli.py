import json
from unittest.mock import AsyncMock, MagicMock, patch

from site_audit.__main__ import build_parser, main
from site_audit.exceptions import OverrideStoreError, SiteUnreachableError


def make_service(report=None, error=None):
    service = MagicMock()
    result = MagicMock()
    result.to_dict.return_value = report or {"url": "https://acmeplumbing.com/", "summary": {"total": 46}}
    service.crawl_and_audit = AsyncMock(return_value=result, side_effect=error)
    service.crawl_and_audit_enhanced = AsyncMock(return_value=result, side_effect=error)
    return service


def test_parser_defaults():
    args = build_parser().parse_args(["acmeplumbing.com"])
    assert args.url == "acmeplumbing.com"
    assert args.enhanced is False
    assert args.output is None


def test_prints_baseline_report(capsys):
    service = make_service()
    with patch("site_audit.__main__.AuditService", return_value=service):
        code = main(["acmeplumbing.com", "--max-pages", "20"])

    assert code == 0
    service.crawl_and_audit.assert_awaited_once()
    assert json.loads(capsys.readouterr().out)["summary"]["total"] == 46


def test_enhanced_flag(capsys):
    service = make_service()
    with patch("site_audit.__main__.AuditService", return_value=service):
        assert main(["acmeplumbing.com", "--enhanced"]) == 0
    service.crawl_and_audit_enhanced.assert_awaited_once()
    service.crawl_and_audit.assert_not_called()


def test_writes_output_file(tmp_path):
    target = tmp_path / "report.json"
    with patch("site_audit.__main__.AuditService", return_value=make_service()):
        assert main(["acmeplumbing.com", "--output", str(target)]) == 0
    assert json.loads(target.read_text())["url"] == "https://acmeplumbing.com/"


def test_unreachable_site_exit_code():
    error = SiteUnreachableError("https://nowhere-acme.invalid/", "DNS Error")
    with patch("site_audit.__main__.AuditService", return_value=make_service(error=error)):
        assert main(["nowhere-acme.invalid"]) == 2


def test_audit_id_loads_overrides_from_redis():
    service = make_service()
    repository = MagicMock()
    with patch("site_audit.__main__.AuditService", return_value=service) as mock_service, \
            patch("site_audit.__main__.RedisOverrideRepository", return_value=repository) as mock_repo:
        code = main(["acmeplumbing.com", "--enhanced", "--audit-id", "audit-7", "--redis-url", "redis://cache:6379/2"])

    assert code == 0
    mock_repo.assert_called_once_with(url="redis://cache:6379/2")
    override_service = mock_service.call_args.kwargs["override_service"]
    assert override_service.repository is repository
    assert service.crawl_and_audit_enhanced.await_args.kwargs["audit_id"] == "audit-7"


def test_audit_id_ignored_for_baseline():
    service = make_service()
    with patch("site_audit.__main__.AuditService", return_value=service) as mock_service, \
            patch("site_audit.__main__.RedisOverrideRepository") as mock_repo:
        assert main(["acmeplumbing.com", "--audit-id", "audit-7"]) == 0

    mock_repo.assert_not_called()
    assert mock_service.call_args.kwargs["override_service"] is None


def test_override_store_down_exit_code():
    error = OverrideStoreError("Redis unavailable at redis://localhost:6379")
    with patch("site_audit.__main__.AuditService", return_value=make_service()), \
            patch("site_audit.__main__.RedisOverrideRepository", side_effect=error):
        assert main(["acmeplumbing.com", "--enhanced", "--audit-id", "audit-7"]) == 3
