"""Google Business Profile API connectors"""

from gmb_hub.connectors.base_connector import FetchPage, GoogleBaseConnector
from gmb_hub.connectors.oauth_connector import GoogleOAuthConnector
from gmb_hub.connectors.locations_connector import AccountsConnector, LocationsConnector
from gmb_hub.connectors.reviews_connector import MediaConnector, ReviewsConnector
from gmb_hub.connectors.performance_connector import PerformanceConnector, SearchKeywordsConnector

__all__ = [
    "FetchPage",
    "GoogleBaseConnector",
    "GoogleOAuthConnector",
    "AccountsConnector",
    "LocationsConnector",
    "MediaConnector",
    "ReviewsConnector",
    "PerformanceConnector",
    "SearchKeywordsConnector",
]
