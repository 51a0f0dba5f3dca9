"""Shared fixtures for the leadflow test suite."""

from typing import Callable

import pytest

from leadflow.config import PipelineConfig, Settings
from leadflow.services.supabase import SupabaseClient, SupabaseConfig
from tests.support import BASE_URL, FakeSupabase


@pytest.fixture
def fake() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def client_config() -> SupabaseConfig:
    return SupabaseConfig(url=BASE_URL, anon_key="anon-key", max_retries=1)


@pytest.fixture
def make_client(fake: FakeSupabase, client_config: SupabaseConfig) -> Callable[[], SupabaseClient]:
    def factory() -> SupabaseClient:
        return SupabaseClient(client_config, transport=fake.transport())

    return factory


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(poll_interval_seconds=0.05, follow_up_delay_seconds=0.0)


@pytest.fixture
def settings(tmp_path, pipeline_config: PipelineConfig) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=tmp_path,
        supabase_url=BASE_URL,
        supabase_anon_key="anon-key",
        supabase={"max_retries": 1},
        pipeline=pipeline_config,
    )
