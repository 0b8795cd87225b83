"""
GroupLedger - Test Configuration

Pytest fixtures and configuration.

Every test gets a fresh in-memory SQLite database seeded with one tenant,
one fiscal period (March 2026) and a two-entity group:

    LE-A  USD  FULL           1.0
    LE-B  EUR  PROPORTIONATE  0.6

Each entity has posted a balanced journal (Dr 1000 Cash / Cr 3000 Equity):
LE-A for 1,000 USD and LE-B for 500 EUR. EUR->USD CLOSING is 1.1 at period
end, so the consolidated cash balance is 1000 + 500 * 1.1 * 0.6 = 1330.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Dict
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import groupledger.models  # noqa: F401
from groupledger.database import Base, get_async_session
from groupledger.models import (
    Account,
    AccountType,
    ChartOfAccounts,
    CoaScope,
    ConsolidationGroup,
    ConsolidationGroupMember,
    ConsolidationMethod,
    FiscalCalendar,
    FiscalPeriod,
    FxRate,
    FxRateType,
    GroupCoaMapping,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    LegalEntity,
    RecordStatus,
)
from groupledger.services.consolidation_run_service import ConsolidationRunService
from main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"

PERIOD_START = date(2026, 3, 1)
PERIOD_END = date(2026, 3, 31)

GROUP_ACCOUNTS = [
    ("1000", "Cash", AccountType.ASSET),
    ("2000", "Intercompany Payable", AccountType.LIABILITY),
    ("3000", "Share Capital", AccountType.EQUITY),
    ("4000", "Revenue", AccountType.REVENUE),
    ("5000", "Operating Expense", AccountType.EXPENSE),
]


@dataclass
class SeedData:
    """Ids of the seeded records."""
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    group_company_id: uuid.UUID
    calendar_id: uuid.UUID
    period_id: uuid.UUID
    entity_a_id: uuid.UUID
    entity_b_id: uuid.UUID
    group_coa_id: uuid.UUID
    local_coa_a_id: uuid.UUID
    local_coa_b_id: uuid.UUID
    group_id: uuid.UUID
    group_accounts: Dict[str, uuid.UUID] = field(default_factory=dict)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database and session for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

def _chart(tenant_id, code, name, scope, legal_entity_id=None) -> ChartOfAccounts:
    return ChartOfAccounts(
        id=uuid4(),
        tenant_id=tenant_id,
        legal_entity_id=legal_entity_id,
        scope=scope,
        code=code,
        name=name,
    )


def _account(tenant_id, coa_id, code, name, account_type) -> Account:
    return Account(
        id=uuid4(),
        tenant_id=tenant_id,
        coa_id=coa_id,
        code=code,
        name=name,
        account_type=account_type,
        is_active=True,
    )


def _journal(tenant_id, legal_entity_id, period_id, lines, status=JournalEntryStatus.POSTED) -> JournalEntry:
    entry = JournalEntry(
        id=uuid4(),
        tenant_id=tenant_id,
        legal_entity_id=legal_entity_id,
        fiscal_period_id=period_id,
        entry_date=PERIOD_END,
        status=status,
    )
    for account_id, debit, credit in lines:
        entry.lines.append(JournalLine(
            account_id=account_id,
            debit_base=Decimal(debit),
            credit_base=Decimal(credit),
        ))
    return entry


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession) -> SeedData:
    """Seed ledgers, group setup and the EUR->USD closing rate."""
    tenant_id = uuid4()

    calendar = FiscalCalendar(id=uuid4(), tenant_id=tenant_id, code="FY", name="Calendar year")
    period = FiscalPeriod(
        id=uuid4(),
        calendar_id=calendar.id,
        fiscal_year=2026,
        period_no=3,
        period_name="2026-03",
        start_date=PERIOD_START,
        end_date=PERIOD_END,
    )
    entity_a = LegalEntity(id=uuid4(), tenant_id=tenant_id, code="LE-A", name="Parent Inc", functional_currency_code="USD")
    entity_b = LegalEntity(id=uuid4(), tenant_id=tenant_id, code="LE-B", name="Sub GmbH", functional_currency_code="EUR")
    db_session.add_all([calendar, period, entity_a, entity_b])

    group_coa = _chart(tenant_id, "GRP-COA", "Group chart", CoaScope.GROUP)
    local_a = _chart(tenant_id, "A-COA", "Parent chart", CoaScope.LEGAL_ENTITY, entity_a.id)
    local_b = _chart(tenant_id, "B-COA", "Sub chart", CoaScope.LEGAL_ENTITY, entity_b.id)
    db_session.add_all([group_coa, local_a, local_b])

    group_accounts = {}
    for code, name, account_type in GROUP_ACCOUNTS:
        account = _account(tenant_id, group_coa.id, code, name, account_type)
        group_accounts[code] = account.id
        db_session.add(account)

    local_accounts = {}
    for chart in (local_a, local_b):
        for code, name, account_type in GROUP_ACCOUNTS[:3:2]:
            account = _account(tenant_id, chart.id, code, name, account_type)
            local_accounts[(chart.id, code)] = account.id
            db_session.add(account)

    db_session.add_all([
        _journal(tenant_id, entity_a.id, period.id, [
            (local_accounts[(local_a.id, "1000")], "1000", "0"),
            (local_accounts[(local_a.id, "3000")], "0", "1000"),
        ]),
        _journal(tenant_id, entity_b.id, period.id, [
            (local_accounts[(local_b.id, "1000")], "500", "0"),
            (local_accounts[(local_b.id, "3000")], "0", "500"),
        ]),
        # Drafts never reach the consolidation
        _journal(tenant_id, entity_a.id, period.id, [
            (local_accounts[(local_a.id, "1000")], "999", "0"),
            (local_accounts[(local_a.id, "3000")], "0", "999"),
        ], status=JournalEntryStatus.DRAFT),
    ])

    group_company_id = uuid4()
    group = ConsolidationGroup(
        id=uuid4(),
        tenant_id=tenant_id,
        group_company_id=group_company_id,
        calendar_id=calendar.id,
        code="GRP",
        name="Test Group",
        presentation_currency_code="USD",
        status=RecordStatus.ACTIVE,
    )
    db_session.add(group)
    db_session.add_all([
        ConsolidationGroupMember(
            consolidation_group_id=group.id,
            legal_entity_id=entity_a.id,
            consolidation_method=ConsolidationMethod.FULL,
            ownership_pct=Decimal("1"),
            effective_from=date(2026, 1, 1),
        ),
        ConsolidationGroupMember(
            consolidation_group_id=group.id,
            legal_entity_id=entity_b.id,
            consolidation_method=ConsolidationMethod.PROPORTIONATE,
            ownership_pct=Decimal("0.6"),
            effective_from=date(2026, 1, 1),
        ),
        GroupCoaMapping(
            tenant_id=tenant_id,
            consolidation_group_id=group.id,
            legal_entity_id=entity_a.id,
            group_coa_id=group_coa.id,
            local_coa_id=local_a.id,
            status=RecordStatus.ACTIVE,
        ),
        GroupCoaMapping(
            tenant_id=tenant_id,
            consolidation_group_id=group.id,
            legal_entity_id=entity_b.id,
            group_coa_id=group_coa.id,
            local_coa_id=local_b.id,
            status=RecordStatus.ACTIVE,
        ),
        FxRate(
            tenant_id=tenant_id,
            rate_date=PERIOD_END,
            from_currency_code="EUR",
            to_currency_code="USD",
            rate_type=FxRateType.CLOSING,
            rate=Decimal("1.1"),
            source="test",
        ),
    ])
    await db_session.commit()

    return SeedData(
        tenant_id=tenant_id,
        user_id=uuid4(),
        group_company_id=group_company_id,
        calendar_id=calendar.id,
        period_id=period.id,
        entity_a_id=entity_a.id,
        entity_b_id=entity_b.id,
        group_coa_id=group_coa.id,
        local_coa_a_id=local_a.id,
        local_coa_b_id=local_b.id,
        group_id=group.id,
        group_accounts=group_accounts,
    )


@pytest_asyncio.fixture
async def run_id(db_session: AsyncSession, seed: SeedData) -> uuid.UUID:
    """Id of a DRAFT run for the seeded group and period."""
    service = ConsolidationRunService(db_session)
    run = await service.create_run(
        tenant_id=seed.tenant_id,
        group_id=seed.group_id,
        fiscal_period_id=seed.period_id,
        run_name="March close",
        started_by_user_id=seed.user_id,
    )
    return run.id


@pytest_asyncio.fixture
async def executed_run_id(db_session: AsyncSession, seed: SeedData, run_id: uuid.UUID) -> uuid.UUID:
    """Id of the seeded run after a successful execution."""
    await ConsolidationRunService(db_session).execute_run(seed.tenant_id, run_id, seed.user_id)
    return run_id


@pytest.fixture
def auth_headers(seed: SeedData) -> Dict[str, str]:
    """Gateway headers for an unrestricted actor."""
    return {
        "X-Tenant-Id": str(seed.tenant_id),
        "X-User-Id": str(seed.user_id),
        "X-Actor-Permissions": "*",
    }
