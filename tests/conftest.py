from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from config.settings import CampaignConfig
from src.data.mock_repository import InMemoryConnector
from src.data.repositories import (
    CompanyRepository,
    CustomerRepository,
    TransactionRepository,
    ProfileRepository,
    DashboardUserRepository
)
from src.engine.core import CampaignDashboardEngine

PRODUCT = "AI untuk UMKM"
REFERRAL = "REF1"
FIXED_NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def build_tables(now: datetime):
    """一个包含各种边界情况的小型活动数据集"""

    def iso(days: float) -> str:
        return (now + timedelta(days=days)).isoformat()

    return {
        'companies': [
            {'id': 'c1', 'name': 'Acme', 'slug': 'acme', 'metadata': {'referral_code': REFERRAL}},
            {'id': 'c2', 'name': 'Other', 'slug': 'other', 'metadata': {'referral_code': 'REF2'}}
        ],
        'demo_excluded_emails': [{'email': 'Blocked@Example.com '}],
        'cms_customers': [
            {'guid': 'g1', 'email': 'a@x.com', 'phone_number': '0811', 'referal_code': REFERRAL,
             'full_name': 'Ani', 'username': 'ani',
             'subscribe_list': [{'product_name': PRODUCT, 'expired_at': iso(10)}],
             'created_at': iso(-50)},
            {'guid': 'g1', 'email': 'dup@x.com', 'phone_number': None, 'referal_code': REFERRAL,
             'subscribe_list': None, 'created_at': iso(-49)},
            {'guid': 'g2', 'email': 'b@x.com', 'phone_number': None, 'referal_code': REFERRAL,
             'subscribe_list': f'[{{"product_name": "{PRODUCT}", "expired_at": "{iso(-3)}"}}]',
             'created_at': iso(-48)},
            {'guid': 'g3', 'email': 'c@x.com', 'phone_number': None, 'referal_code': REFERRAL,
             'subscribe_list': 'Kelas Online', 'created_at': iso(-47)},
            {'guid': 'g4', 'email': 'blocked@example.com', 'phone_number': None, 'referal_code': REFERRAL,
             'subscribe_list': [{'product_name': PRODUCT, 'expired_at': iso(10)}], 'created_at': iso(-46)},
            {'guid': None, 'email': None, 'phone_number': None, 'referal_code': REFERRAL,
             'subscribe_list': [{'product_name': PRODUCT, 'expired_at': iso(10)}], 'created_at': iso(-45)},
            {'guid': 'g5', 'email': 'e@x.com', 'phone_number': None, 'referal_code': 'REF2',
             'subscribe_list': [], 'created_at': iso(-44)}
        ],
        'transactions': [
            {'customer_guid': 'g1', 'status': 'Finished', 'valuta_code': 'IDR'},
            {'customer_guid': 'g1', 'status': 'Finished', 'valuta_code': 'IDR'},
            {'customer_guid': 'g2', 'status': 'Finished', 'valuta_code': 'IDR'},
            {'customer_guid': 'g3', 'status': 'Pending', 'valuta_code': 'IDR'},
            {'customer_guid': 'g2', 'status': 'Finished', 'valuta_code': 'USD'},
            {'customer_guid': 'g9', 'status': 'Finished', 'valuta_code': 'IDR'}
        ],
        'credit_manager_transactions': [
            {'id': 't1', 'user_id': 'g1', 'product_name': PRODUCT, 'type': 'debit', 'amount': 100,
             'created_at': iso(-2)},
            {'id': 't2', 'user_id': 'g1', 'product_name': PRODUCT, 'type': 'debit', 'amount': 50,
             'created_at': iso(-20)},
            {'id': 't3', 'user_id': 'g1', 'product_name': PRODUCT, 'type': 'credit', 'amount': 40,
             'created_at': iso(-2)},
            {'id': 't4', 'user_id': 'g2', 'product_name': PRODUCT, 'type': 'debit', 'amount': 10,
             'created_at': iso(-15)},
            {'id': 't5', 'user_id': 'g2', 'product_name': PRODUCT, 'type': 'credit', 'amount': 10,
             'created_at': iso(-1)}
        ],
        'profile': [
            {'id': 'p1', 'customer_guid': 'g1', 'full_name': 'Ani', 'email': 'a@x.com',
             'phone': '0811', 'created_at': iso(-10)},
            {'id': 'p0', 'customer_guid': 'g1', 'full_name': 'Ani (old)', 'email': 'a@x.com',
             'phone': None, 'created_at': iso(-100)}
        ],
        'dashboard_users': [
            {'id': 'u1', 'email': 'admin@acme.com', 'full_name': 'Admin', 'role': 'company_admin',
             'company_id': 'c1'},
            {'id': 'u2', 'email': 'root@x.com', 'full_name': 'Root', 'role': 'super_admin',
             'company_id': None}
        ],
        'app_users': [
            {'id': 'au1', 'full_name': 'User 1', 'email': 'u1@x.com', 'profile_data': {}, 'company_id': 'c1'},
            {'id': 'au2', 'full_name': 'User 2', 'email': 'u2@x.com', 'profile_data': {}, 'company_id': 'c2'},
            {'id': 'au3', 'full_name': 'User 3', 'email': 'u3@x.com', 'profile_data': None, 'company_id': 'c1'}
        ]
    }


def make_engine(tables, fail_on=None):
    """用内存数据源构造引擎"""
    db = InMemoryConnector(tables, fail_on)
    settings = SimpleNamespace(campaign=CampaignConfig(
        referral_code=REFERRAL,
        product_name=PRODUCT,
        transaction_currency='IDR',
        profile_transaction_limit=500
    ))
    engine = CampaignDashboardEngine(
        company_repo=CompanyRepository(db),
        customer_repo=CustomerRepository(db),
        transaction_repo=TransactionRepository(db),
        profile_repo=ProfileRepository(db),
        dashboard_user_repo=DashboardUserRepository(db),
        settings=settings
    )
    return engine, db


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def tables(now):
    return build_tables(now)


@pytest.fixture
def engine_factory():
    return make_engine


@pytest.fixture
def tables_factory():
    return build_tables
