import json
from unittest.mock import Mock

import pytest
import requests

from app.services import ExchangeRateService


class TestExchangeRateService:
    def test_static_rate(self, tmp_path):
        service = ExchangeRateService(82.0, cache_path=str(tmp_path / "rates.json"))
        assert service.get_rate() == 82.0
        assert service.convert(10) == 820.0

    def test_default_rate_without_cache(self, tmp_path):
        service = ExchangeRateService(cache_path=str(tmp_path / "rates.json"))
        assert service.get_rate() == ExchangeRateService.DEFAULT_RATE

    def test_cached_rate_is_used_offline(self, tmp_path):
        cache = tmp_path / "rates.json"
        cache.write_text(json.dumps({"INR": 84.25}), encoding="utf-8")
        assert ExchangeRateService(cache_path=str(cache)).get_rate() == 84.25

    def test_online_rate_is_fetched_and_cached(self, tmp_path, monkeypatch):
        response = Mock()
        response.json.return_value = {"result": "success", "rates": {"INR": 83.5, "EUR": 0.92}}
        get = Mock(return_value=response)
        monkeypatch.setattr("app.services.requests.get", get)
        cache = tmp_path / "rates.json"

        service = ExchangeRateService(use_online=True, cache_path=str(cache), url="https://rates.test/USD")

        assert service.get_rate() == 83.5
        assert get.call_args.args[0] == "https://rates.test/USD"
        assert json.loads(cache.read_text(encoding="utf-8")) == {"INR": 83.5}

    def test_network_error_falls_back_to_cache(self, tmp_path, monkeypatch):
        cache = tmp_path / "rates.json"
        cache.write_text(json.dumps({"INR": 81.0}), encoding="utf-8")
        monkeypatch.setattr(
            "app.services.requests.get", Mock(side_effect=requests.ConnectionError("offline"))
        )

        service = ExchangeRateService(use_online=True, cache_path=str(cache))

        assert service.get_rate() == 81.0

    def test_network_error_without_cache_uses_default(self, tmp_path, monkeypatch):
        monkeypatch.setattr("app.services.requests.get", Mock(side_effect=requests.Timeout("slow")))
        service = ExchangeRateService(use_online=True, cache_path=str(tmp_path / "rates.json"))
        assert service.get_rate() == ExchangeRateService.DEFAULT_RATE

    def test_response_without_target_rate(self, tmp_path, monkeypatch):
        response = Mock()
        response.json.return_value = {"rates": {"EUR": 0.92}}
        monkeypatch.setattr("app.services.requests.get", Mock(return_value=response))
        cache = tmp_path / "rates.json"

        service = ExchangeRateService(use_online=True, cache_path=str(cache))

        assert service.get_rate() == ExchangeRateService.DEFAULT_RATE
        assert not cache.exists()

    def test_http_error_falls_back(self, tmp_path, monkeypatch):
        response = Mock()
        response.raise_for_status.side_effect = requests.HTTPError("503")
        monkeypatch.setattr("app.services.requests.get", Mock(return_value=response))
        service = ExchangeRateService(use_online=True, cache_path=str(tmp_path / "rates.json"))
        assert service.get_rate() == ExchangeRateService.DEFAULT_RATE

    @pytest.mark.parametrize("content", ["not json", json.dumps({"USD": 1.0}), json.dumps([1, 2])])
    def test_unreadable_cache_is_ignored(self, tmp_path, content):
        cache = tmp_path / "rates.json"
        cache.write_text(content, encoding="utf-8")
        assert ExchangeRateService(cache_path=str(cache)).get_rate() == ExchangeRateService.DEFAULT_RATE
