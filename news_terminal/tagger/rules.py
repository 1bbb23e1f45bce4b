"""
Tagging Rule Tables

Ordered keyword patterns per tag. Order is significant: the first matching
region wins, and markets/themes stop collecting at MAX_TAGS_PER_CATEGORY in
table order. Bump RULES_VERSION whenever a pattern changes so stored tags
can be traced back to the table that produced them.
"""
from __future__ import annotations

import re
from typing import Pattern

from news_terminal.models.news import Market, Region, Theme

RULES_VERSION = "1"


def _rule(alternatives: str) -> Pattern[str]:
    return re.compile(rf"\b({alternatives})\b", re.IGNORECASE)


REGION_RULES: tuple[tuple[Region, Pattern[str]], ...] = (
    (Region.AMERICAS, _rule(r"US|USA|United States|U\.S\.|American|NYSE|NASDAQ|S&P|Canada|Mexico|Brazil")),
    (Region.EUROPE, _rule(
        r"Europe|European|EU|Eurozone|ECB|DAX|CAC|EuroStoxx|Paris|Frankfurt|Amsterdam"
        r"|UK|United Kingdom|London|FTSE|British"
    )),
    (Region.ASIA_PACIFIC, _rule(
        r"Asia|Asian|Hong Kong|Singapore|Tokyo|Shanghai|KOSPI|Nikkei|Hang Seng|JSX"
        r"|China|Chinese|CNY|India|Australia"
    )),
    (Region.MIDDLE_EAST, _rule(r"Middle East|Saudi|UAE|Dubai|Israel|Gulf|OPEC|Oil")),
    (Region.AFRICA, _rule(r"Africa|African|South Africa|Lagos|Cairo")),
    (Region.GLOBAL, _rule(r"Global|Worldwide|International|World")),
)

DEFAULT_REGION = Region.GLOBAL

MARKET_RULES: tuple[tuple[Market, Pattern[str]], ...] = (
    (Market.EQUITIES, _rule(r"stock|equity|equities|shares|equity market|SP500|DAX|FTSE|ASX")),
    (Market.FIXED_INCOME, _rule(r"bond|bonds|fixed income|treasury|yield|curve|credit|debt|corporate bond")),
    (Market.FX, _rule(r"forex|FX|currency|exchange rate|dollar|euro|pound|yen|sterling")),
    (Market.COMMODITIES, _rule(r"commodity|commodities|oil|gold|copper|wheat|natural gas|crude|precious metal")),
    (Market.CRYPTO, _rule(r"crypto|cryptocurrency|bitcoin|ethereum|digital asset|BTC|ETH|blockchain")),
    (Market.DERIVATIVES, _rule(r"derivative|derivatives|futures|options|swaps|forward")),
    (Market.CREDIT, _rule(r"credit|credit market|CDS|spreads|high yield|junk bond|corporate credit")),
)

THEME_RULES: tuple[tuple[Theme, Pattern[str]], ...] = (
    (Theme.MONETARY_POLICY, _rule(r"Fed|Federal Reserve|interest rate|rate hike|monetary policy|QE|quantitative easing")),
    (Theme.FISCAL_POLICY, _rule(r"fiscal stimulus|government spending|tax|budget|stimulus|infrastructure|spending bill")),
    (Theme.ECONOMIC_DATA, _rule(r"GDP|inflation|CPI|PPI|employment|jobless|unemployment|economic data|manufacturing")),
    (Theme.EARNINGS, _rule(r"earnings|profit|revenue|guidance|EPS|Q[1-4] result")),
    (Theme.M_AND_A, _rule(r"merger|acquisition|M&A|buyout|takeover|deal|IPO|spin-off|divestiture")),
    (Theme.CORPORATE_ACTION, _rule(r"dividend|buyback|stock split|corporate action|shareholder")),
    (Theme.GEOPOLITICS, _rule(
        r"geopolitics|geopolitical|war|sanctions|conflict|trade war|tariff|political risk|crisis"
        r"|oil crisis|OPEC|crude oil|natural gas|renewable|green energy"
    )),
    (Theme.RISK_EVENT, _rule(r"risk|crisis|crash|correction|drawdown|systemic|contagion|stress test|default")),
    (Theme.REGULATION, _rule(r"regulation|regulatory|compliance|SEC|banking|antitrust|deregulation")),
    (Theme.MARKET_STRUCTURE, _rule(
        r"market structure|circuit breaker|trading halt|exchange|settlement|clearing|volatility surface"
    )),
)
