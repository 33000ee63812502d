import asyncio
import sys
from functools import partial

import httpx
import pytest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import bikeshare_refresh.cli as cli
import bikeshare_refresh.core.db as db_module
import bikeshare_refresh.services.refresh_service as refresh_service_module
from bikeshare_refresh.core.config import Settings
from bikeshare_refresh.core.errors import StalenessQueryError
from bikeshare_refresh.models import Base, Network, Station
from bikeshare_refresh.schemas.refresh import RefreshSummary
from bikeshare_refresh.services.providers.citybikes_client import CityBikesClient
from factories import upstream_station


def test_parse_args_defaults_defer_to_settings():
    args = cli.parse_args([])

    assert args.threshold_minutes is None
    assert args.batch_size is None
    assert args.dry_run is None
    assert args.strategy is None


def test_parse_args_overrides():
    args = cli.parse_args(["--threshold-minutes", "0", "--batch-size", "5", "--dry-run", "--strategy", "aggregate"])

    assert args.threshold_minutes == 0
    assert args.batch_size == 5
    assert args.dry_run is True
    assert args.strategy == "aggregate"


@pytest.mark.parametrize("argv", [["--batch-size", "0"], ["--threshold-minutes", "-1"], ["--strategy", "fast"]])
def test_parse_args_rejects_invalid_values(argv):
    with pytest.raises(SystemExit) as exc:
        cli.parse_args(argv)
    assert exc.value.code == 2


def test_main_exits_zero_on_completion(monkeypatch):
    seen = {}

    async def fake_run(args):
        seen["dry_run"] = args.dry_run
        return RefreshSummary(stale_networks=2, networks_processed=1, stations_updated=10)

    monkeypatch.setattr(cli, "run_refresh", fake_run)

    assert cli.main(["--dry-run"]) == cli.EXIT_OK
    assert seen["dry_run"] is True


def test_main_exits_non_zero_when_staleness_query_fails(monkeypatch):
    async def fake_run(args):
        raise StalenessQueryError("relation \"networks\" does not exist")

    monkeypatch.setattr(cli, "run_refresh", fake_run)

    assert cli.main([]) == cli.EXIT_FAILED


def test_unknown_log_level_flag_is_rejected():
    with pytest.raises(SystemExit) as exc:
        cli.main(["--log-level", "bogus"])
    assert exc.value.code == cli.EXIT_BAD_CONFIG


def test_log_level_flag_is_case_insensitive():
    assert cli.parse_args(["--log-level", "debug"]).log_level == "DEBUG"


def test_unknown_log_level_setting_fails_validation(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "bogus")

    with pytest.raises(ValidationError):
        Settings()


def test_main_exits_bad_config_on_invalid_log_level_setting(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "bogus")
    # Force settings to be validated again on the next import.
    monkeypatch.delitem(sys.modules, "bikeshare_refresh.core.config")

    assert cli.main([]) == cli.EXIT_BAD_CONFIG


def test_main_refreshes_reachable_networks_when_one_upstream_fails(tmp_path, monkeypatch):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'refresh.db'}", poolclass=NullPool)
    session_factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async def seed():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with session_factory() as session:
            for network_id, citybikes_id in (("net-a", "alpha"), ("net-b", "bravo")):
                session.add(
                    Network(
                        id=network_id,
                        name=network_id,
                        station_status_url="https://example.test/gbfs/station_status.json",
                        raw_data={"id": citybikes_id},
                    )
                )
            await session.commit()

    async def stored_network_ids():
        async with session_factory() as session:
            res = await session.execute(select(Station.network_id))
            return sorted(res.scalars().all())

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v2/networks/alpha":
            body = {"network": {"id": "alpha", "stations": [upstream_station("a-1"), upstream_station("a-2")]}}
            return httpx.Response(200, json=body)
        return httpx.Response(503)

    asyncio.run(seed())
    monkeypatch.setattr(db_module, "engine", engine)
    monkeypatch.setattr(db_module, "AsyncSessionLocal", session_factory)
    monkeypatch.setattr(
        refresh_service_module,
        "CityBikesClient",
        partial(
            CityBikesClient,
            base_url="https://api.citybik.test",
            timeout_s=1.0,
            user_agent="test-agent/1.0",
            transport=httpx.MockTransport(handler),
        ),
    )

    assert cli.main(["--threshold-minutes", "30"]) == cli.EXIT_OK
    assert asyncio.run(stored_network_ids()) == ["net-a", "net-a"]
    asyncio.run(engine.dispose())
