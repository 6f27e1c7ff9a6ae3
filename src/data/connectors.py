# src/data/connectors.py
import logging
from typing import List, Dict, Any, Optional, Iterable, Tuple, Union

import httpx

logger = logging.getLogger(__name__)

FilterValue = Union[str, int, float, bool, None, Iterable[Any]]


class DataStoreError(Exception):
    """数据源读取失败（连接失败、查询被拒绝等）"""


def quote_value(value: Any) -> str:
    """PostgREST in.() 列表和 or 表达式中的值需要加引号"""
    text = str(value).replace('\\', '\\\\').replace('"', '\\"')
    return f'"{text}"'


def build_filter(op: str, value: FilterValue) -> str:
    """生成PostgREST过滤表达式，例如 eq.Finished / in.("a","b")"""
    if op == 'in':
        return f"in.({','.join(quote_value(v) for v in value)})"
    return f"{op}.{value}"


class SupabaseConnector:
    """Supabase (PostgREST) 只读连接器"""

    def __init__(self, url: str = None, service_role_key: str = None, timeout: float = None):
        if url is None or service_role_key is None:
            from config.settings import get_settings
            settings = get_settings().supabase
            url = url or settings.url
            service_role_key = service_role_key or settings.service_role_key
            timeout = timeout or settings.timeout

        if not url or not service_role_key:
            raise ConnectionError("Supabase is not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY)")

        self.base_url = url.rstrip('/') + '/rest/v1'
        self.timeout = timeout or 30.0
        self._headers = {
            'apikey': service_role_key,
            'Authorization': f'Bearer {service_role_key}',
            'Accept': 'application/json'
        }
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """获取客户端实例（懒加载）"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self.timeout
            )
            logger.info(f"Created Supabase client for {self.base_url}")
        return self._client

    async def select(
            self,
            table: str,
            columns: str = '*',
            filters: Optional[List[Tuple[str, str, FilterValue]]] = None,
            or_filter: Optional[str] = None,
            order: Optional[str] = None,
            limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """执行只读查询

        filters 为 (列, 操作符, 值) 列表，order 形如 "created_at.desc"。
        """
        params: List[Tuple[str, str]] = [('select', columns)]
        for column, op, value in filters or []:
            params.append((column, build_filter(op, value)))
        if or_filter:
            params.append(('or', f'({or_filter})'))
        if order:
            params.append(('order', order))
        if limit is not None:
            params.append(('limit', str(limit)))

        logger.debug(f"Querying {table}: {params}")

        try:
            response = await self.client.get(f'/{table}', params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = self._error_message(e.response)
            logger.error(f"Query on {table} rejected: {message}")
            raise DataStoreError(message) from e
        except httpx.HTTPError as e:
            logger.error(f"Query on {table} failed: {e}")
            raise DataStoreError(str(e) or e.__class__.__name__) from e

        data = response.json()
        return data if isinstance(data, list) else [data]

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """提取PostgREST返回的错误信息"""
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"
        if isinstance(body, dict) and body.get('message'):
            return body['message']
        return f"HTTP {response.status_code}"

    async def close(self):
        """关闭连接"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Supabase connection closed")
