# exam_prep/core/news_client.py
import logging
from typing import List, Dict, Any
import requests
from .config import config
from .exceptions import NewsUnavailable

logger = logging.getLogger(__name__)

class NewsClient:
    """Client for the NewsAPI top-headlines endpoint"""

    def __init__(self, session: requests.Session = None):
        self.session = session or requests.Session()

    def fetch_headlines(self, api_key: str, country: str = None,
                        category: str = None) -> List[Dict[str, Any]]:
        """Fetch raw headlines; raises NewsUnavailable on any provider failure"""
        params = {
            "country": country or config.NEWS_DEFAULT_COUNTRY,
            "category": category or config.NEWS_DEFAULT_CATEGORY,
            "pageSize": config.NEWS_PAGE_SIZE,
        }

        logger.info(f"📰 Fetching news for category: {params['category']}, country: {params['country']}")

        try:
            response = self.session.get(
                config.NEWS_API_URL,
                params=params,
                headers={"X-Api-Key": api_key},
                timeout=config.NEWS_TIMEOUT
            )
        except requests.exceptions.Timeout:
            raise NewsUnavailable("NewsAPI timed out")
        except requests.exceptions.RequestException as e:
            raise NewsUnavailable(f"NewsAPI request failed: {e}")

        if not response.ok:
            logger.error(f"NewsAPI error: {response.status_code} {response.text[:200]}")
            raise NewsUnavailable(f"NewsAPI error: {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            raise NewsUnavailable("NewsAPI returned a non-JSON body")

        articles = payload.get("articles") or []
        logger.info(f"📰 Fetched {len(articles)} articles")
        return [self._normalize(article) for article in articles if article.get("title")]

    @staticmethod
    def _normalize(article: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "title": article.get("title"),
            "description": article.get("description"),
            "content": article.get("content"),
            "source": (article.get("source") or {}).get("name"),
            "image_url": article.get("urlToImage"),
            "published_at": article.get("publishedAt"),
        }

    def close(self):
        """Release pooled HTTP connections"""
        self.session.close()
        logger.info("✅ News client session closed")
