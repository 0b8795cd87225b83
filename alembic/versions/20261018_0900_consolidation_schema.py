"""Consolidation engine schema

Ledger reference tables, FX rates, consolidation groups and runs,
eliminations, adjustments and the audit log.

Revision ID: 20261018_0900_consolidation_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261018_0900_consolidation_schema'
down_revision = None
branch_labels = None
depends_on = None


ACCOUNT_TYPE = sa.Enum('ASSET', 'LIABILITY', 'EQUITY', 'REVENUE', 'EXPENSE', name='accounttype')
COA_SCOPE = sa.Enum('LEGAL_ENTITY', 'GROUP', name='coascope')
JOURNAL_STATUS = sa.Enum('DRAFT', 'POSTED', 'REVERSED', name='journalentrystatus')
FX_RATE_TYPE = sa.Enum('SPOT', 'AVERAGE', 'CLOSING', name='fxratetype')
RECORD_STATUS = sa.Enum('ACTIVE', 'INACTIVE', name='recordstatus')
CONSOLIDATION_METHOD = sa.Enum('FULL', 'PROPORTIONATE', name='consolidationmethod')
PLACEHOLDER_DIRECTION = sa.Enum('AUTO', 'DEBIT', 'CREDIT', name='placeholderdirection')
RUN_STATUS = sa.Enum('DRAFT', 'IN_PROGRESS', 'COMPLETED', 'FAILED', 'LOCKED', name='runstatus')
POSTING_STATUS = sa.Enum('DRAFT', 'POSTED', name='postingstatus')
# Enum names, not values, are stored
AUDIT_ACTION = sa.Enum('CREATE', 'UPDATE', 'EXECUTE', 'POST', 'FINALIZE', name='auditaction')


def _base_columns():
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def _posting_columns():
    return [
        sa.Column('created_by_user_id', sa.Uuid(), nullable=True),
        sa.Column('posted_by_user_id', sa.Uuid(), nullable=True),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _amount():
    return sa.Numeric(precision=20, scale=6)


def upgrade() -> None:
    # =========================================================================
    # LEDGER REFERENCE TABLES
    # =========================================================================
    op.create_table(
        'legal_entities',
        *_base_columns(),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('functional_currency_code', sa.String(3), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_legal_entities'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_legal_entity_code'),
    )
    op.create_index('ix_legal_entities_tenant_id', 'legal_entities', ['tenant_id'])

    op.create_table(
        'charts_of_accounts',
        *_base_columns(),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('legal_entity_id', sa.Uuid(), nullable=True),
        sa.Column('scope', COA_SCOPE, nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.ForeignKeyConstraint(['legal_entity_id'], ['legal_entities.id'], ondelete='CASCADE',
                                name='fk_charts_of_accounts_legal_entity_id_legal_entities'),
        sa.PrimaryKeyConstraint('id', name='pk_charts_of_accounts'),
    )
    op.create_index('ix_charts_of_accounts_tenant_id', 'charts_of_accounts', ['tenant_id'])

    op.create_table(
        'accounts',
        *_base_columns(),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('coa_id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('account_type', ACCOUNT_TYPE, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['coa_id'], ['charts_of_accounts.id'], ondelete='CASCADE',
                                name='fk_accounts_coa_id_charts_of_accounts'),
        sa.PrimaryKeyConstraint('id', name='pk_accounts'),
        sa.UniqueConstraint('coa_id', 'code', name='uq_account_code'),
    )
    op.create_index('ix_accounts_tenant_id', 'accounts', ['tenant_id'])
    op.create_index('ix_accounts_coa_id', 'accounts', ['coa_id'])

    op.create_table(
        'fiscal_calendars',
        *_base_columns(),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_fiscal_calendars'),
    )
    op.create_index('ix_fiscal_calendars_tenant_id', 'fiscal_calendars', ['tenant_id'])

    op.create_table(
        'fiscal_periods',
        *_base_columns(),
        sa.Column('calendar_id', sa.Uuid(), nullable=False),
        sa.Column('fiscal_year', sa.Integer(), nullable=False),
        sa.Column('period_no', sa.Integer(), nullable=False),
        sa.Column('period_name', sa.String(50), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(['calendar_id'], ['fiscal_calendars.id'], ondelete='CASCADE',
                                name='fk_fiscal_periods_calendar_id_fiscal_calendars'),
        sa.PrimaryKeyConstraint('id', name='pk_fiscal_periods'),
        sa.UniqueConstraint('calendar_id', 'fiscal_year', 'period_no', name='uq_fiscal_period'),
    )
    op.create_index('ix_fiscal_periods_calendar_id', 'fiscal_periods', ['calendar_id'])

    op.create_table(
        'journal_entries',
        *_base_columns(),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('legal_entity_id', sa.Uuid(), nullable=False),
        sa.Column('fiscal_period_id', sa.Uuid(), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('status', JOURNAL_STATUS, nullable=False),
        sa.ForeignKeyConstraint(['legal_entity_id'], ['legal_entities.id'], ondelete='RESTRICT',
                                name='fk_journal_entries_legal_entity_id_legal_entities'),
        sa.ForeignKeyConstraint(['fiscal_period_id'], ['fiscal_periods.id'], ondelete='RESTRICT',
                                name='fk_journal_entries_fiscal_period_id_fiscal_periods'),
        sa.PrimaryKeyConstraint('id', name='pk_journal_entries'),
    )
    op.create_index('ix_journal_entries_tenant_id', 'journal_entries', ['tenant_id'])
    op.create_index('ix_je_entity_period', 'journal_entries', ['legal_entity_id', 'fiscal_period_id'])

    op.create_table(
        'journal_lines',
        *_base_columns(),
        sa.Column('journal_entry_id', sa.Uuid(), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('debit_base', _amount(), nullable=False),
        sa.Column('credit_base', _amount(), nullable=False),
        sa.ForeignKeyConstraint(['journal_entry_id'], ['journal_entries.id'], ondelete='CASCADE',
                                name='fk_journal_lines_journal_entry_id_journal_entries'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='RESTRICT',
                                name='fk_journal_lines_account_id_accounts'),
        sa.PrimaryKeyConstraint('id', name='pk_journal_lines'),
    )
    op.create_index('ix_journal_lines_journal_entry_id', 'journal_lines', ['journal_entry_id'])
    op.create_index('ix_journal_lines_account_id', 'journal_lines', ['account_id'])

    # =========================================================================
    # FX RATES
    # =========================================================================
    op.create_table(
        'fx_rates',
        *_base_columns(),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('rate_date', sa.Date(), nullable=False),
        sa.Column('from_currency_code', sa.String(3), nullable=False),
        sa.Column('to_currency_code', sa.String(3), nullable=False),
        sa.Column('rate_type', FX_RATE_TYPE, nullable=False),
        sa.Column('rate', sa.Numeric(precision=20, scale=10), nullable=False),
        sa.Column('source', sa.String(100), nullable=True),
        sa.Column('is_locked', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_fx_rates'),
        sa.UniqueConstraint(
            'tenant_id', 'rate_date', 'from_currency_code', 'to_currency_code', 'rate_type',
            name='uq_fx_rate',
        ),
    )
    op.create_index(
        'ix_fx_rate_lookup', 'fx_rates',
        ['tenant_id', 'from_currency_code', 'to_currency_code', 'rate_date'],
    )

    # =========================================================================
    # GROUP SETUP
    # =========================================================================
    op.create_table(
        'consolidation_groups',
        *_base_columns(),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('group_company_id', sa.Uuid(), nullable=True, comment='Parent company owning the group'),
        sa.Column('calendar_id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('presentation_currency_code', sa.String(3), nullable=False),
        sa.Column('status', RECORD_STATUS, nullable=False),
        sa.ForeignKeyConstraint(['calendar_id'], ['fiscal_calendars.id'],
                                name='fk_consolidation_groups_calendar_id_fiscal_calendars'),
        sa.PrimaryKeyConstraint('id', name='pk_consolidation_groups'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_consolidation_group_code'),
    )
    op.create_index('ix_consolidation_groups_tenant_id', 'consolidation_groups', ['tenant_id'])

    op.create_table(
        'consolidation_group_members',
        *_base_columns(),
        sa.Column('consolidation_group_id', sa.Uuid(), nullable=False),
        sa.Column('legal_entity_id', sa.Uuid(), nullable=False),
        sa.Column('consolidation_method', CONSOLIDATION_METHOD, nullable=False),
        sa.Column('ownership_pct', sa.Numeric(9, 6), nullable=False, comment='Fraction in [0, 1]'),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(['consolidation_group_id'], ['consolidation_groups.id'], ondelete='CASCADE',
                                name='fk_consolidation_group_members_consolidation_group_id_consolidation_groups'),
        sa.ForeignKeyConstraint(['legal_entity_id'], ['legal_entities.id'],
                                name='fk_consolidation_group_members_legal_entity_id_legal_entities'),
        sa.PrimaryKeyConstraint('id', name='pk_consolidation_group_members'),
        sa.UniqueConstraint('consolidation_group_id', 'legal_entity_id', 'effective_from',
                            name='uq_group_member_window'),
    )

    op.create_table(
        'group_coa_mappings',
        *_base_columns(),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('consolidation_group_id', sa.Uuid(), nullable=False),
        sa.Column('legal_entity_id', sa.Uuid(), nullable=False),
        sa.Column('group_coa_id', sa.Uuid(), nullable=False),
        sa.Column('local_coa_id', sa.Uuid(), nullable=False),
        sa.Column('status', RECORD_STATUS, nullable=False),
        sa.ForeignKeyConstraint(['consolidation_group_id'], ['consolidation_groups.id'], ondelete='CASCADE',
                                name='fk_group_coa_mappings_consolidation_group_id_consolidation_groups'),
        sa.ForeignKeyConstraint(['legal_entity_id'], ['legal_entities.id'],
                                name='fk_group_coa_mappings_legal_entity_id_legal_entities'),
        sa.ForeignKeyConstraint(['group_coa_id'], ['charts_of_accounts.id'],
                                name='fk_group_coa_mappings_group_coa_id_charts_of_accounts'),
        sa.ForeignKeyConstraint(['local_coa_id'], ['charts_of_accounts.id'],
                                name='fk_group_coa_mappings_local_coa_id_charts_of_accounts'),
        sa.PrimaryKeyConstraint('id', name='pk_group_coa_mappings'),
        sa.UniqueConstraint('consolidation_group_id', 'legal_entity_id', 'group_coa_id', 'local_coa_id',
                            name='uq_group_coa_mapping'),
    )
    op.create_index('ix_group_coa_mappings_tenant_id', 'group_coa_mappings', ['tenant_id'])

    op.create_table(
        'elimination_placeholders',
        *_base_columns(),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('consolidation_group_id', sa.Uuid(), nullable=False),
        sa.Column('placeholder_code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=True),
        sa.Column('default_direction', PLACEHOLDER_DIRECTION, nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['consolidation_group_id'], ['consolidation_groups.id'], ondelete='CASCADE',
                                name='fk_elimination_placeholders_consolidation_group_id_consolidation_groups'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'],
                                name='fk_elimination_placeholders_account_id_accounts'),
        sa.PrimaryKeyConstraint('id', name='pk_elimination_placeholders'),
        sa.UniqueConstraint('consolidation_group_id', 'placeholder_code', name='uq_elimination_placeholder'),
    )

    # =========================================================================
    # RUNS
    # =========================================================================
    op.create_table(
        'consolidation_runs',
        *_base_columns(),
        sa.Column('consolidation_group_id', sa.Uuid(), nullable=False),
        sa.Column('fiscal_period_id', sa.Uuid(), nullable=False),
        sa.Column('run_name', sa.String(255), nullable=False),
        sa.Column('status', RUN_STATUS, nullable=False),
        sa.Column('presentation_currency_code', sa.String(3), nullable=False),
        sa.Column('started_by_user_id', sa.Uuid(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['consolidation_group_id'], ['consolidation_groups.id'],
                                name='fk_consolidation_runs_consolidation_group_id_consolidation_groups'),
        sa.ForeignKeyConstraint(['fiscal_period_id'], ['fiscal_periods.id'],
                                name='fk_consolidation_runs_fiscal_period_id_fiscal_periods'),
        sa.PrimaryKeyConstraint('id', name='pk_consolidation_runs'),
    )
    op.create_index('ix_consolidation_runs_consolidation_group_id', 'consolidation_runs', ['consolidation_group_id'])
    op.create_index('ix_run_group_period', 'consolidation_runs', ['consolidation_group_id', 'fiscal_period_id'])

    op.create_table(
        'consolidation_run_entries',
        *_base_columns(),
        sa.Column('consolidation_run_id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('consolidation_group_id', sa.Uuid(), nullable=False),
        sa.Column('fiscal_period_id', sa.Uuid(), nullable=False),
        sa.Column('legal_entity_id', sa.Uuid(), nullable=False),
        sa.Column('group_account_id', sa.Uuid(), nullable=False),
        sa.Column('source_currency_code', sa.String(3), nullable=False),
        sa.Column('presentation_currency_code', sa.String(3), nullable=False),
        sa.Column('consolidation_method', CONSOLIDATION_METHOD, nullable=False),
        sa.Column('ownership_pct', sa.Numeric(9, 6), nullable=False),
        sa.Column('translation_rate', sa.Numeric(20, 10), nullable=False),
        sa.Column('local_debit_base', _amount(), nullable=False),
        sa.Column('local_credit_base', _amount(), nullable=False),
        sa.Column('local_balance_base', _amount(), nullable=False),
        sa.Column('translated_debit', _amount(), nullable=False),
        sa.Column('translated_credit', _amount(), nullable=False),
        sa.Column('translated_balance', _amount(), nullable=False),
        sa.ForeignKeyConstraint(['consolidation_run_id'], ['consolidation_runs.id'], ondelete='CASCADE',
                                name='fk_consolidation_run_entries_consolidation_run_id_consolidation_runs'),
        sa.ForeignKeyConstraint(['consolidation_group_id'], ['consolidation_groups.id'],
                                name='fk_consolidation_run_entries_consolidation_group_id_consolidation_groups'),
        sa.ForeignKeyConstraint(['fiscal_period_id'], ['fiscal_periods.id'],
                                name='fk_consolidation_run_entries_fiscal_period_id_fiscal_periods'),
        sa.ForeignKeyConstraint(['legal_entity_id'], ['legal_entities.id'],
                                name='fk_consolidation_run_entries_legal_entity_id_legal_entities'),
        sa.ForeignKeyConstraint(['group_account_id'], ['accounts.id'],
                                name='fk_consolidation_run_entries_group_account_id_accounts'),
        sa.PrimaryKeyConstraint('id', name='pk_consolidation_run_entries'),
        sa.UniqueConstraint('consolidation_run_id', 'legal_entity_id', 'group_account_id', name='uq_run_entry'),
    )

    # =========================================================================
    # ELIMINATIONS & ADJUSTMENTS
    # =========================================================================
    op.create_table(
        'elimination_entries',
        *_base_columns(),
        *_posting_columns(),
        sa.Column('consolidation_run_id', sa.Uuid(), nullable=False),
        sa.Column('status', POSTING_STATUS, nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('reference_no', sa.String(100), nullable=True),
        sa.ForeignKeyConstraint(['consolidation_run_id'], ['consolidation_runs.id'], ondelete='CASCADE',
                                name='fk_elimination_entries_consolidation_run_id_consolidation_runs'),
        sa.PrimaryKeyConstraint('id', name='pk_elimination_entries'),
    )
    op.create_index('ix_elimination_entries_consolidation_run_id', 'elimination_entries', ['consolidation_run_id'])

    op.create_table(
        'elimination_lines',
        *_base_columns(),
        sa.Column('elimination_entry_id', sa.Uuid(), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('legal_entity_id', sa.Uuid(), nullable=True),
        sa.Column('counterparty_legal_entity_id', sa.Uuid(), nullable=True),
        sa.Column('debit_amount', _amount(), nullable=False),
        sa.Column('credit_amount', _amount(), nullable=False),
        sa.Column('currency_code', sa.String(3), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['elimination_entry_id'], ['elimination_entries.id'], ondelete='CASCADE',
                                name='fk_elimination_lines_elimination_entry_id_elimination_entries'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'],
                                name='fk_elimination_lines_account_id_accounts'),
        sa.ForeignKeyConstraint(['legal_entity_id'], ['legal_entities.id'],
                                name='fk_elimination_lines_legal_entity_id_legal_entities'),
        sa.ForeignKeyConstraint(['counterparty_legal_entity_id'], ['legal_entities.id'],
                                name='fk_elimination_lines_counterparty_legal_entity_id_legal_entities'),
        sa.PrimaryKeyConstraint('id', name='pk_elimination_lines'),
        sa.UniqueConstraint('elimination_entry_id', 'line_no', name='uq_elimination_line_no'),
    )
    op.create_index('ix_elimination_lines_elimination_entry_id', 'elimination_lines', ['elimination_entry_id'])

    op.create_table(
        'consolidation_adjustments',
        *_base_columns(),
        *_posting_columns(),
        sa.Column('consolidation_run_id', sa.Uuid(), nullable=False),
        sa.Column('adjustment_type', sa.String(50), nullable=False),
        sa.Column('status', POSTING_STATUS, nullable=False),
        sa.Column('legal_entity_id', sa.Uuid(), nullable=True),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('debit_amount', _amount(), nullable=False),
        sa.Column('credit_amount', _amount(), nullable=False),
        sa.Column('currency_code', sa.String(3), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['consolidation_run_id'], ['consolidation_runs.id'], ondelete='CASCADE',
                                name='fk_consolidation_adjustments_consolidation_run_id_consolidation_runs'),
        sa.ForeignKeyConstraint(['legal_entity_id'], ['legal_entities.id'],
                                name='fk_consolidation_adjustments_legal_entity_id_legal_entities'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'],
                                name='fk_consolidation_adjustments_account_id_accounts'),
        sa.PrimaryKeyConstraint('id', name='pk_consolidation_adjustments'),
    )
    op.create_index(
        'ix_consolidation_adjustments_consolidation_run_id',
        'consolidation_adjustments',
        ['consolidation_run_id'],
    )

    # =========================================================================
    # AUDIT LOG
    # =========================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('action', AUDIT_ACTION, nullable=False),
        sa.Column('resource_type', sa.String(100), nullable=False),
        sa.Column('resource_id', sa.String(100), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_audit_logs'),
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])


def downgrade() -> None:
    op.drop_index('ix_audit_logs_tenant_id', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_consolidation_adjustments_consolidation_run_id', table_name='consolidation_adjustments')
    op.drop_table('consolidation_adjustments')
    op.drop_index('ix_elimination_lines_elimination_entry_id', table_name='elimination_lines')
    op.drop_table('elimination_lines')
    op.drop_index('ix_elimination_entries_consolidation_run_id', table_name='elimination_entries')
    op.drop_table('elimination_entries')
    op.drop_table('consolidation_run_entries')
    op.drop_index('ix_run_group_period', table_name='consolidation_runs')
    op.drop_index('ix_consolidation_runs_consolidation_group_id', table_name='consolidation_runs')
    op.drop_table('consolidation_runs')
    op.drop_table('elimination_placeholders')
    op.drop_index('ix_group_coa_mappings_tenant_id', table_name='group_coa_mappings')
    op.drop_table('group_coa_mappings')
    op.drop_table('consolidation_group_members')
    op.drop_index('ix_consolidation_groups_tenant_id', table_name='consolidation_groups')
    op.drop_table('consolidation_groups')
    op.drop_index('ix_fx_rate_lookup', table_name='fx_rates')
    op.drop_table('fx_rates')
    op.drop_index('ix_journal_lines_account_id', table_name='journal_lines')
    op.drop_index('ix_journal_lines_journal_entry_id', table_name='journal_lines')
    op.drop_table('journal_lines')
    op.drop_index('ix_je_entity_period', table_name='journal_entries')
    op.drop_index('ix_journal_entries_tenant_id', table_name='journal_entries')
    op.drop_table('journal_entries')
    op.drop_index('ix_fiscal_periods_calendar_id', table_name='fiscal_periods')
    op.drop_table('fiscal_periods')
    op.drop_index('ix_fiscal_calendars_tenant_id', table_name='fiscal_calendars')
    op.drop_table('fiscal_calendars')
    op.drop_index('ix_accounts_coa_id', table_name='accounts')
    op.drop_index('ix_accounts_tenant_id', table_name='accounts')
    op.drop_table('accounts')
    op.drop_index('ix_charts_of_accounts_tenant_id', table_name='charts_of_accounts')
    op.drop_table('charts_of_accounts')
    op.drop_index('ix_legal_entities_tenant_id', table_name='legal_entities')
    op.drop_table('legal_entities')

    bind = op.get_bind()
    for enum_type in (
        AUDIT_ACTION, POSTING_STATUS, RUN_STATUS, PLACEHOLDER_DIRECTION, CONSOLIDATION_METHOD,
        RECORD_STATUS, FX_RATE_TYPE, JOURNAL_STATUS, COA_SCOPE, ACCOUNT_TYPE,
    ):
        enum_type.drop(bind, checkfirst=True)
