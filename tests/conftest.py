"""Pytest configuration and fixtures."""

from typing import Callable

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import wait_none

from backoffice.models import Base
from backoffice.services import sync_runner, token_service
from backoffice.shopee_client import ShopeeClient


TEST_PARTNER_ID = 100005203
TEST_PARTNER_KEY = "test-partner-key"
TEST_BASE_URL = "https://partner.test"

# 테스트용 메모리 SQLite 엔진
# StaticPool: TestClient 워커 스레드와 같은 메모리 DB 를 공유
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,  # 테스트 로그 줄이기
)

TestSessionLocal = sessionmaker(
    bind=test_engine,
    autoflush=False,
    expire_on_commit=False,
)


@pytest.fixture(scope="function")
def test_session() -> Session:
    """
    테스트용 데이터베이스 세션 fixture.
    각 테스트마다 테이블을 새로 만들고 끝나면 삭제.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(autouse=True)
def _reset_single_flight_locks():
    sync_runner._run_locks.clear()
    token_service._refresh_locks.clear()
    token_service._refresh_lock_users.clear()
    yield
    sync_runner._run_locks.clear()
    token_service._refresh_locks.clear()
    token_service._refresh_lock_users.clear()


@pytest.fixture(autouse=True)
def _no_retry_wait(monkeypatch):
    """tenacity 재시도 대기 제거"""
    monkeypatch.setattr(ShopeeClient._send.retry, "wait", wait_none())


@pytest.fixture
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], ShopeeClient]:
    """httpx.MockTransport 기반 ShopeeClient 팩토리"""
    def _factory(handler: Callable[[httpx.Request], httpx.Response]) -> ShopeeClient:
        return ShopeeClient(
            partner_id=TEST_PARTNER_ID,
            partner_key=TEST_PARTNER_KEY,
            base_url=TEST_BASE_URL,
            transport=httpx.MockTransport(handler),
        )
    return _factory


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (DB 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (메모리 DB / Mock API)")
