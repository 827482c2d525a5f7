"""
Business Profile Performance API connectors

Daily metric time series and monthly search keyword impressions. Both take
the bare 'locations/{id}' resource name.
"""
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from gmb_hub.config import get_settings
from gmb_hub.connectors.base_connector import FetchPage, GoogleBaseConnector
from gmb_hub.errors import ProviderAPIError
from gmb_hub.utils.helpers import to_int
from gmb_hub.utils.logger import log
from gmb_hub.utils.resource_names import performance_location_name

settings = get_settings()

DAILY_METRICS = [
    "BUSINESS_IMPRESSIONS_DESKTOP_MAPS",
    "BUSINESS_IMPRESSIONS_DESKTOP_SEARCH",
    "BUSINESS_IMPRESSIONS_MOBILE_MAPS",
    "BUSINESS_IMPRESSIONS_MOBILE_SEARCH",
    "BUSINESS_CONVERSATIONS",
    "BUSINESS_DIRECTION_REQUESTS",
    "CALL_CLICKS",
    "WEBSITE_CLICKS",
    "BUSINESS_BOOKINGS",
    "BUSINESS_FOOD_ORDERS",
    "BUSINESS_FOOD_MENU_CLICKS",
]


def _date_from_parts(parts: Optional[Dict[str, Any]]) -> Optional[date]:
    """Google Date message {year, month, day} -> date"""
    if not parts:
        return None
    try:
        return date(int(parts["year"]), int(parts["month"]), int(parts.get("day") or 1))
    except (KeyError, TypeError, ValueError):
        return None


def flatten_daily_metrics(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Flatten a fetchMultiDailyMetricsTimeSeries response into metric points.

    A dated value without "value" means zero for that day.
    """
    points = []
    for multi in payload.get("multiDailyMetricTimeSeries") or []:
        for series in multi.get("dailyMetricTimeSeries") or []:
            metric_type = series.get("dailyMetric")
            if not metric_type:
                continue
            sub_entity = series.get("dailySubEntityType") or None
            for dated in (series.get("timeSeries") or {}).get("datedValues") or []:
                metric_date = _date_from_parts(dated.get("date"))
                if metric_date is None:
                    continue
                points.append({
                    "metric_type": metric_type,
                    "metric_date": metric_date,
                    "metric_value": to_int(dated.get("value"), 0),
                    "sub_entity_type": sub_entity,
                })
    return points


class PerformanceConnector(GoogleBaseConnector):
    """Daily metrics for one location over a day range (single request, no paging)"""

    def __init__(self, access_token: str):
        super().__init__("GMB Performance", access_token)
        self.base_url = settings.gmb_performance_base

    async def fetch_page(
        self,
        resource_name: str,
        page_token: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        metrics: Optional[Sequence[str]] = None,
        **params,
    ) -> FetchPage:
        location = performance_location_name(resource_name)
        query = [("dailyMetrics", metric) for metric in (metrics or DAILY_METRICS)]
        query += [
            ("dailyRange.start_date.year", start_date.year),
            ("dailyRange.start_date.month", start_date.month),
            ("dailyRange.start_date.day", start_date.day),
            ("dailyRange.end_date.year", end_date.year),
            ("dailyRange.end_date.month", end_date.month),
            ("dailyRange.end_date.day", end_date.day),
        ]

        try:
            status, payload = await self._request(
                "GET", f"{self.base_url}/{location}:fetchMultiDailyMetricsTimeSeries", params=query
            )
        except ProviderAPIError as e:
            log.warning(f"Performance fetch for {location} failed: {e.message}")
            return FetchPage()

        if status >= 400 or payload is None:
            return self._degrade(status, f"{location} daily metrics")

        return FetchPage(flatten_daily_metrics(payload), None)

    async def fetch_daily_metrics(self, resource_name: str, start_date: date, end_date: date,
                                  metrics: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        return await self.fetch_all(resource_name, start_date=start_date, end_date=end_date, metrics=metrics)


def keyword_from_item(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Normalize one searchKeywordsCounts entry.

    insightsValue carries either "value" (known count) or "threshold"
    (provider suppressed a low count); both are kept.
    """
    keyword = (item.get("searchKeyword") or "").strip()
    if not keyword:
        return None
    insights = item.get("insightsValue") or {}
    if "value" in insights:
        return {"search_keyword": keyword, "impressions_count": to_int(insights.get("value")),
                "threshold_value": None, "is_thresholded": False}
    if "threshold" in insights:
        threshold = to_int(insights.get("threshold"))
        return {"search_keyword": keyword, "impressions_count": threshold,
                "threshold_value": threshold, "is_thresholded": True}
    return {"search_keyword": keyword, "impressions_count": 0,
            "threshold_value": None, "is_thresholded": False}


class SearchKeywordsConnector(GoogleBaseConnector):
    """Monthly search keyword impressions for one location (paginated)"""

    PAGE_SIZE = 100

    def __init__(self, access_token: str):
        super().__init__("GMB Search Keywords", access_token)
        self.base_url = settings.gmb_performance_base

    async def fetch_page(
        self,
        resource_name: str,
        page_token: Optional[str] = None,
        start_month: Optional[date] = None,
        end_month: Optional[date] = None,
        **params,
    ) -> FetchPage:
        location = performance_location_name(resource_name)
        query = {
            "monthlyRange.start_month.year": start_month.year,
            "monthlyRange.start_month.month": start_month.month,
            "monthlyRange.end_month.year": end_month.year,
            "monthlyRange.end_month.month": end_month.month,
            "pageSize": self.PAGE_SIZE,
        }
        if page_token:
            query["pageToken"] = page_token

        try:
            status, payload = await self._request(
                "GET", f"{self.base_url}/{location}/searchkeywords/impressions/monthly", params=query
            )
        except ProviderAPIError as e:
            log.warning(f"Search keywords fetch for {location} failed: {e.message}")
            return FetchPage()

        if status >= 400 or payload is None:
            return self._degrade(status, f"{location} search keywords")

        items = []
        for raw in payload.get("searchKeywordsCounts") or []:
            keyword = keyword_from_item(raw)
            if keyword:
                items.append(keyword)
        return FetchPage(items, payload.get("nextPageToken"))

    async def fetch_monthly_keywords(self, resource_name: str, start_month: date, end_month: date,
                                     incremental: bool = False) -> List[Dict[str, Any]]:
        return await self.fetch_all(resource_name, incremental=incremental,
                                    start_month=start_month, end_month=end_month)
