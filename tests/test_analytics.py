import pytest
from datetime import datetime, timedelta, timezone

from src.analytics.normalizer import (
    FieldShape,
    decode_shape,
    normalize_subscribe_list,
    normalize_product_list,
    to_subscribe_list,
    to_product_list
)
from src.analytics.cohort import dedupe_customers, filter_excluded
from src.analytics.classifiers import compute_status, compute_activity
from src.analytics.transactions import aggregate_daily
from src.analytics.utility import parse_timestamp, to_iso
from src.data.models import CmsCustomer, ProductEntry

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
PRODUCT = "AI untuk UMKM"

MALFORMED_INPUTS = [
    None, 0, 1.5, True, "", "   ", "[", "{}", '{"a": 1}', "null", b"bytes",
    {}, [], [None], [{}], [[1, 2]], {"product_list": "x"}, {"product_list": [None, {}]},
    [{"product_list": [{"product_list": []}]}], object(), float("nan"),
    "[" * 100000 + "]" * 100000, '{"product_list": ' * 50000
]


class TestFieldNormalizer:
    """测试订阅字段标准化"""

    @pytest.mark.parametrize("value", MALFORMED_INPUTS)
    def test_never_raises(self, value):
        """任何输入都返回列表"""
        assert isinstance(to_subscribe_list(value), list)
        assert isinstance(to_product_list(value), list)

    def test_deeply_nested_objects(self):
        """嵌套过深的对象退化为空列表或字符串"""
        value = []
        for _ in range(100000):
            value = [{"product_list": value}]
        assert to_product_list(value) == []
        assert to_subscribe_list({"product_list": value}) == ["[object]"]

    def test_list_of_objects_and_primitives(self):
        """对象取名称字段，null被丢弃"""
        assert to_subscribe_list([{"product_name": "X"}, "Y", None]) == ["X", "Y"]

    def test_name_field_priority(self):
        """product_name > name > product"""
        items = [{"name": "B", "product": "C"}, {"product": "C"}, {"product_name": "A", "name": "B"}]
        assert to_subscribe_list(items) == ["B", "C", "A"]

    def test_object_without_name_is_serialized(self):
        """没有名称字段的对象被序列化"""
        names, fallback = normalize_subscribe_list([{"foo": "bar"}])
        assert names == ['{"foo":"bar"}']
        assert fallback is True

    def test_primitive_coercion_and_blank_removal(self):
        """数字、布尔值转字符串，空白项被丢弃"""
        assert to_subscribe_list([1, 2.0, True, "", "  "]) == ["1", "2", "true"]

    def test_json_string(self):
        """JSON数组字符串"""
        assert to_subscribe_list('["A", "B"]') == ["A", "B"]
        assert to_subscribe_list('[{"product_name": "A"}, null]') == ["A"]

    def test_comma_separated_string(self):
        """逗号分隔字符串"""
        names, fallback = normalize_subscribe_list("A, B ,,C")
        assert names == ["A", "B", "C"]
        assert fallback is False

    def test_json_object_string_falls_back_to_split(self):
        """非数组的JSON字符串按逗号拆分"""
        assert to_subscribe_list('{"product_name": "A"}') == ['{"product_name": "A"}']

    def test_nested_object(self):
        """对象里嵌套的 product_list 会被展开"""
        assert to_subscribe_list({"product_list": [{"name": "A"}, "B"]}) == ["A", "B"]
        assert to_subscribe_list({"product": "C"}) == ["C"]
        assert to_subscribe_list({"foo": 1}) == ['{"foo":1}']

    def test_unsupported_type(self):
        """不支持的类型返回空列表"""
        names, fallback = normalize_subscribe_list(42)
        assert names == []
        assert fallback is True

    def test_product_list_from_json_string(self):
        """JSON字符串解析为产品条目"""
        result = to_product_list('[{"product_name":"A","expired_at":"2099-01-01"}]')
        assert result == [ProductEntry(name="A", expired_at="2099-01-01")]

    def test_product_list_flattens_nested_entries(self):
        """条目里的 product_list 会被展开，字符串变为无到期时间的条目"""
        value = [
            {"product_list": [{"product_name": "A", "expired_at": "2030-01-01"}, {"name": "B"}]},
            "C",
            None,
            7
        ]
        assert to_product_list(value) == [
            ProductEntry(name="A", expired_at="2030-01-01"),
            ProductEntry(name="B", expired_at=None),
            ProductEntry(name="C", expired_at=None),
            ProductEntry(name="7", expired_at=None)
        ]

    def test_product_list_object_input(self):
        """单个对象"""
        assert to_product_list({"product": "C", "expired_at": "2030-01-01"}) == [
            ProductEntry(name="C", expired_at="2030-01-01")
        ]
        assert to_product_list({"product_list": [{"name": "D"}]}) == [ProductEntry(name="D")]
        assert to_product_list({"foo": "bar"}) == []

    def test_product_list_keeps_duplicates_in_order(self):
        """同名条目（续订）按原顺序保留"""
        value = [{"name": "A", "expired_at": "2024-01-01"}, {"name": "A", "expired_at": "2025-01-01"}]
        assert [e.expired_at for e in to_product_list(value)] == ["2024-01-01", "2025-01-01"]

    def test_product_list_plain_string_is_empty(self):
        """逗号分隔字符串没有产品信息"""
        entries, fallback = normalize_product_list("A, B")
        assert entries == []
        assert fallback is True

    def test_decode_shape(self):
        """输入形态判定"""
        assert decode_shape(None)[0] is FieldShape.MISSING
        assert decode_shape([1])[0] is FieldShape.LIST
        assert decode_shape("[1]") == (FieldShape.JSON_LIST_STRING, [1])
        assert decode_shape("a,b")[0] is FieldShape.DELIMITED_STRING
        assert decode_shape({"a": 1})[0] is FieldShape.OBJECT
        assert decode_shape(3.5)[0] is FieldShape.UNSUPPORTED


class TestCohortDeduplicator:
    """测试客户去重"""

    def test_dedupe_by_guid_keeps_anonymous_rows(self):
        """相同guid只保留第一条，匿名记录全部保留"""
        rows = [
            CmsCustomer(guid="1", email="a"),
            CmsCustomer(guid="1", email="b"),
            CmsCustomer(guid=None, email=None),
            CmsCustomer(guid=None, email=None)
        ]
        result = dedupe_customers(rows)
        assert len(result) == 3
        assert result[0].email == "a"
        assert result[1] is rows[2]
        assert result[2] is rows[3]

    def test_key_falls_back_to_email_then_phone(self):
        """没有guid时用email，再用电话"""
        rows = [
            CmsCustomer(email="x@y.com"),
            CmsCustomer(guid="", email="x@y.com", phone_number="1"),
            CmsCustomer(phone_number="0812"),
            CmsCustomer(phone_number="0812", full_name="second"),
            CmsCustomer(guid="g", email="x@y.com")
        ]
        result = dedupe_customers(rows)
        assert [r.full_name for r in result] == [None, None, None]
        assert result[2].guid == "g"

    def test_filter_excluded_is_case_insensitive(self):
        """排除名单不区分大小写，没有邮箱的记录保留"""
        rows = [CmsCustomer(guid="1", email="QA@Example.com "), CmsCustomer(guid="2"), CmsCustomer(guid="3", email="ok@x.com")]
        result = filter_excluded(rows, ["qa@example.com", None, ""])
        assert [r.guid for r in result] == ["2", "3"]


class TestStatusClassifier:
    """测试订阅状态判定"""

    def _customer(self, expired_at, name=PRODUCT):
        return CmsCustomer(guid="g", subscribe_list=[{"product_name": name, "expired_at": expired_at}])

    def test_active_when_expiry_in_future(self):
        """到期时间在未来"""
        expiry = (NOW + timedelta(days=1)).isoformat()
        result = compute_status(self._customer(expiry), NOW, "  ai UNTUK umkm ")
        assert result.status == "active"
        assert result.expires_at == expiry

    def test_expired_when_expiry_in_past(self):
        """到期时间已过"""
        expiry = (NOW - timedelta(days=1)).isoformat()
        result = compute_status(self._customer(expiry), NOW, PRODUCT)
        assert result.status == "expired"
        assert result.expires_at == expiry

    def test_registered_when_not_subscribed(self):
        """没有订阅目标产品"""
        customer = CmsCustomer(guid="g", subscribe_list=["Kelas Online"])
        result = compute_status(customer, NOW, PRODUCT)
        assert result.status == "registered"
        assert result.expires_at is None
        assert result.subscribe_list == ["Kelas Online"]

    def test_subscribed_without_expiry_is_registered(self):
        """订阅了但没有可解析的到期时间"""
        customer = CmsCustomer(guid="g", subscribe_list=[PRODUCT])
        assert compute_status(customer, NOW, PRODUCT).status == "registered"

        customer = CmsCustomer(guid="g", subscribe_list=[{"product_name": PRODUCT, "expired_at": "soon"}])
        assert compute_status(customer, NOW, PRODUCT).status == "registered"

    def test_mixed_expiries_is_expired(self):
        """续订记录中有一条已过期"""
        customer = CmsCustomer(guid="g", subscribe_list=[
            {"product_name": PRODUCT, "expired_at": "2025-05-01"},
            {"product_name": PRODUCT, "expired_at": "2025-07-01"}
        ])
        result = compute_status(customer, NOW, PRODUCT)
        assert result.status == "expired"
        assert result.expires_at == "2025-07-01"

    def test_unparseable_expiry_is_ignored(self):
        """无法解析的到期时间被忽略"""
        customer = CmsCustomer(guid="g", subscribe_list=[
            {"product_name": PRODUCT, "expired_at": "not a date"},
            {"product_name": PRODUCT, "expired_at": "2099-01-01"}
        ])
        assert compute_status(customer, NOW, PRODUCT).status == "active"

    def test_product_list_takes_precedence(self):
        """有 product_list 时用它判断到期时间"""
        customer = CmsCustomer(
            guid="g",
            subscribe_list=PRODUCT,
            product_list=[{"product_name": PRODUCT, "expired_at": "2099-01-01T00:00:00Z"}]
        )
        result = compute_status(customer, NOW, PRODUCT)
        assert result.status == "active"
        assert result.product_list == [ProductEntry(name=PRODUCT, expired_at="2099-01-01T00:00:00Z")]

    @pytest.mark.parametrize("word", ["now", "today"])
    def test_relative_word_expiry_is_ignored(self, word):
        """now / today 不算到期时间"""
        result = compute_status(self._customer(word), NOW, PRODUCT)
        assert result.status == "registered"
        assert result.expires_at is None

    def test_naive_now_is_treated_as_utc(self):
        """不带时区的当前时间按UTC处理"""
        result = compute_status(self._customer("2025-06-02"), NOW.replace(tzinfo=None), PRODUCT)
        assert result.status == "active"


class TestActivityClassifier:
    """测试活跃度判定"""

    @pytest.mark.parametrize("days_ago, expected", [
        (3, "active"),
        (6.9, "active"),
        (7, "idle"),
        (10, "idle"),
        (30, "idle"),
        (40, "pasif")
    ])
    def test_buckets(self, days_ago, expected):
        """按距今天数分桶"""
        usage = NOW - timedelta(days=days_ago)
        result = compute_activity(usage.isoformat(), NOW)
        assert result.activity == expected
        assert result.last_usage == to_iso(usage)

    def test_no_usage(self):
        """没有使用记录"""
        result = compute_activity(None, NOW)
        assert result.activity == "pasif"
        assert result.last_usage is None

    def test_unparseable_usage(self):
        """无法解析的时间"""
        result = compute_activity("yesterday-ish", NOW)
        assert result.activity == "pasif"
        assert result.last_usage is None

    @pytest.mark.parametrize("word", ["now", "today", " Today ", "NOW"])
    def test_relative_words_are_unparseable(self, word):
        """now / today 不是有效的使用时间"""
        result = compute_activity(word, NOW)
        assert result.activity == "pasif"
        assert result.last_usage is None

    def test_iso_format(self):
        """输出统一为UTC毫秒格式"""
        result = compute_activity("2025-05-30T07:00:00+07:00", NOW)
        assert result.last_usage == "2025-05-30T00:00:00.000Z"


class TestTransactionAggregator:
    """测试交易日汇总"""

    def test_credit_and_debit_in_one_bucket(self):
        """同一天同一产品的收支合并"""
        transactions = [
            {"product_name": "X", "created_at": "2025-01-01", "type": "debit", "amount": 100},
            {"product_name": "X", "created_at": "2025-01-01T10:00:00Z", "type": "credit", "amount": 40}
        ]
        result = aggregate_daily(transactions)

        assert len(result) == 1
        bucket = result[0]
        assert bucket.product_name == "X"
        assert bucket.date == "2025-01-01"
        assert bucket.total_count == 2
        assert bucket.debit_amount == 100
        assert bucket.credit_amount == 40
        assert bucket.net_amount == -60
        assert bucket.debit_count == 1
        assert bucket.credit_count == 1

    def test_invalid_dates_and_amounts(self):
        """无效日期跳过，非数字金额只计数"""
        transactions = [
            {"product_name": "X", "created_at": None, "type": "debit", "amount": 5},
            {"product_name": "X", "created_at": "garbage", "type": "debit", "amount": 5},
            {"product_name": "X", "created_at": "2025-01-01", "type": "debit", "amount": "abc"},
            {"product_name": "X", "created_at": "2025-01-01", "type": "credit", "amount": None},
            {"product_name": "X", "created_at": "2025-01-01", "type": "CREDIT", "amount": "25"},
            {"product_name": "X", "created_at": "2025-01-01", "type": None, "amount": 10}
        ]
        result = aggregate_daily(transactions)

        assert len(result) == 1
        bucket = result[0]
        assert bucket.total_count == 4
        assert bucket.credit_count == 1
        assert bucket.debit_count == 1
        assert bucket.credit_amount == 25
        assert bucket.debit_amount == 10
        assert bucket.net_amount == 15

    def test_sorting_and_missing_product(self):
        """日期倒序，同一天按产品名正序，缺失产品名记为 -"""
        transactions = [
            {"product_name": "B", "created_at": "2025-01-01T01:00:00Z", "type": "debit", "amount": 1},
            {"product_name": "B", "created_at": "2025-01-02T01:00:00Z", "type": "debit", "amount": 1},
            {"product_name": "A", "created_at": "2025-01-01T05:00:00Z", "type": "debit", "amount": 1},
            {"product_name": None, "created_at": "2025-01-01T06:00:00Z", "type": "debit", "amount": 1}
        ]
        result = aggregate_daily(transactions)

        assert [(d.date, d.product_name) for d in result] == [
            ("2025-01-02", "B"),
            ("2025-01-01", "-"),
            ("2025-01-01", "A"),
            ("2025-01-01", "B")
        ]

    def test_product_order_ignores_case(self):
        """产品名排序不区分大小写"""
        transactions = [
            {"product_name": name, "created_at": "2025-01-01", "type": "debit", "amount": 1}
            for name in ["C", "b", "A"]
        ]
        assert [d.product_name for d in aggregate_daily(transactions)] == ["A", "b", "C"]

    def test_empty(self):
        """空流水"""
        assert aggregate_daily([]) == []


class TestTimestampParsing:
    """测试时间解析"""

    def test_formats(self):
        """常见格式都解析为UTC"""
        assert parse_timestamp("2025-01-01") == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp("2025-01-01T07:00:00+07:00") == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp("2025-01-01T00:00:00Z") == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp("9999-12-31").year == 9999

    def test_invalid(self):
        """无法解析时返回None"""
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(12345) is None

    @pytest.mark.parametrize("word", ["now", "today", "tomorrow", "yesterday"])
    def test_relative_words(self, word):
        """相对时间词不解析"""
        assert parse_timestamp(word) is None
