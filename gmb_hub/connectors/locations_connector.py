"""
Business Information API connectors: accounts and locations
"""
from typing import Optional

from gmb_hub.config import get_settings
from gmb_hub.connectors.base_connector import FetchPage, GoogleBaseConnector
from gmb_hub.errors import ProviderAPIError
from gmb_hub.utils.logger import log

settings = get_settings()

LOCATION_READ_MASK = "name,title,storefrontAddress,phoneNumbers,websiteUri,categories,metadata,profile"


class AccountsConnector(GoogleBaseConnector):
    """Account Management API, used to resolve the account resource name"""

    def __init__(self, access_token: str):
        super().__init__("GMB Accounts", access_token)
        self.base_url = settings.gmb_account_management_base

    async def fetch_page(self, resource_name: str = "accounts", page_token: Optional[str] = None, **params) -> FetchPage:
        query = {"pageSize": 20}
        if page_token:
            query["pageToken"] = page_token
        status, payload = await self._request("GET", f"{self.base_url}/accounts", params=query)
        if status >= 400 or payload is None:
            raise ProviderAPIError(f"Failed to list accounts (HTTP {status})", status=status, payload=payload)
        return FetchPage(payload.get("accounts") or [], payload.get("nextPageToken"))

    async def get_primary_account_name(self) -> Optional[str]:
        """Resource name of the first account the grant can see, e.g. 'accounts/123'"""
        page = await self.fetch_page()
        for account in page.items:
            if account.get("name"):
                log.info(f"Resolved GMB account resource {account['name']}")
                return account["name"]
        return None


class LocationsConnector(GoogleBaseConnector):
    """
    Lists locations under an account.

    Unlike the per-location resources, a failure here is fatal for the sync's
    location stage and is raised to the orchestrator.
    """

    PAGE_SIZE = 100

    def __init__(self, access_token: str):
        super().__init__("GMB Locations", access_token)
        self.base_url = settings.gmb_business_info_base

    async def fetch_page(self, resource_name: str, page_token: Optional[str] = None, **params) -> FetchPage:
        query = {"readMask": LOCATION_READ_MASK, "pageSize": self.PAGE_SIZE}
        if page_token:
            query["pageToken"] = page_token

        status, payload = await self._request("GET", f"{self.base_url}/{resource_name}/locations", params=query)
        if status >= 400:
            raise ProviderAPIError(
                f"Failed to fetch locations for {resource_name} (HTTP {status}): {self._error_message(payload)}",
                status=status,
                payload=payload,
            )
        if payload is None:
            raise ProviderAPIError(f"Locations response for {resource_name} was not JSON", status=status)

        return FetchPage(payload.get("locations") or [], payload.get("nextPageToken"))
