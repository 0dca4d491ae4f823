"""Test configuration and fixtures."""

import copy
import gzip
import json

import pytest
import tiktoken

from kyoto_transit.budget.limiter import ResponseBudgeter
from kyoto_transit.core.config import Settings
from kyoto_transit.core.fetcher import RouteHtmlFetcher
from kyoto_transit.core.models import ReferenceTables
from kyoto_transit.core.reference import ReferenceDataStore
from kyoto_transit.services.container import TransitServices
from kyoto_transit.services.route_search import RouteSearchService
from kyoto_transit.services.stop_search import StopSearchService

JA_MASTER = {
    "company": {
        "200": {"ekidiv": "B", "name": "京都市バス"},
        "300": {"ekidiv": "R", "name": "京都市営地下鉄"},
        "400": {"ekidiv": "R", "name": "JR西日本"},
    },
    "stationselect": {
        "浄土寺": {
            "stationnames": [{"stationname": "浄土寺(京都市バス)", "companyid": 200}],
            "kana": "じょうどじ",
        },
        "銀閣寺道": {
            "stationnames": [{"stationname": "銀閣寺道(京都市バス)", "companyid": 200}],
            "kana": "ぎんかくじみち",
        },
        "銀閣寺前": {
            "stationnames": [{"stationname": "銀閣寺前(京都市バス)", "companyid": 200}],
            "kana": "ぎんかくじまえ",
        },
        "四条烏丸": {
            "stationnames": [{"stationname": "四条烏丸(京都市バス)", "companyid": 200}],
            "kana": "しじょうからすま",
        },
        "烏丸御池": {
            "stationnames": [
                {"stationname": "烏丸御池(京都市バス)", "companyid": 200},
                {"stationname": "烏丸御池(京都市営地下鉄)", "companyid": 300},
            ],
            "kana": "からすまおいけ",
        },
        "京都": {
            "stationnames": [
                {"stationname": "京都(JR西日本)", "companyid": 400},
                {"stationname": "京都(京都市営地下鉄)", "companyid": 300},
            ],
            "kana": "きょうと",
        },
    },
    "station": {
        "浄土寺(京都市バス)": {"lat": 35.0235, "lng": 135.7945, "ekidiv": "B", "selectname": "浄土寺"},
        "銀閣寺道(京都市バス)": {"lat": 35.0250, "lng": 135.7915, "ekidiv": "B", "selectname": "銀閣寺道"},
        "銀閣寺前(京都市バス)": {"lat": 35.0265, "lng": 135.7960, "ekidiv": "B", "selectname": "銀閣寺前"},
        "四条烏丸(京都市バス)": {"lat": 35.0037, "lng": 135.7596, "ekidiv": "B", "selectname": "四条烏丸"},
        "烏丸御池(京都市バス)": {"lat": 35.0108, "lng": 135.7598, "ekidiv": "B", "selectname": "烏丸御池"},
        "烏丸御池(京都市営地下鉄)": {"lat": 35.0110, "lng": 135.7594, "ekidiv": "R", "selectname": "烏丸御池"},
        "京都(JR西日本)": {"lat": 34.9858, "lng": 135.7588, "ekidiv": "R", "selectname": "京都"},
        "京都(京都市営地下鉄)": {"lat": 34.9860, "lng": 135.7592, "ekidiv": "R", "selectname": "京都"},
    },
    "coefficient": {
        "SEARCH_NEAR_SPOTS_NUMBER": 3,
        "SEARCH_FIRST_DEPARTURE_TIME": "05:30",
        "SESRCH_LAST_ARRIVAL_TIME": "23:00",
    },
}

EN_MASTER = {
    "company": {
        "200": {"ekidiv": "B", "name": "Kyoto City Bus"},
        "300": {"ekidiv": "R", "name": "Kyoto Municipal Subway"},
        "400": {"ekidiv": "R", "name": "JR West"},
    },
    "stationselect": {
        "Jodoji": {"stationnames": [{"stationname": "Jodoji(Kyoto City Bus)", "companyid": 200}]},
        "Ginkakuji-michi": {
            "stationnames": [{"stationname": "Ginkakuji-michi(Kyoto City Bus)", "companyid": 200}]
        },
        "Ginkakuji-mae": {
            "stationnames": [{"stationname": "Ginkakuji-mae(Kyoto City Bus)", "companyid": 200}]
        },
        "Shijo Karasuma": {
            "stationnames": [{"stationname": "Shijo Karasuma(Kyoto City Bus)", "companyid": 200}]
        },
        "Karasuma Oike": {
            "stationnames": [
                {"stationname": "Karasuma Oike(Kyoto City Bus)", "companyid": 200},
                {"stationname": "Karasuma Oike(Kyoto Municipal Subway)", "companyid": 300},
            ]
        },
        "Kyoto": {
            "stationnames": [
                {"stationname": "Kyoto(JR West)", "companyid": 400},
                {"stationname": "Kyoto(Kyoto Municipal Subway)", "companyid": 300},
            ]
        },
    },
    "station": {
        "Jodoji(Kyoto City Bus)": {"lat": 35.0235, "lng": 135.7945, "ekidiv": "B", "selectname": "Jodoji"},
        "Ginkakuji-michi(Kyoto City Bus)": {"lat": 35.0250, "lng": 135.7915, "ekidiv": "B", "selectname": "Ginkakuji-michi"},
        "Ginkakuji-mae(Kyoto City Bus)": {"lat": 35.0265, "lng": 135.7960, "ekidiv": "B", "selectname": "Ginkakuji-mae"},
        "Shijo Karasuma(Kyoto City Bus)": {"lat": 35.0037, "lng": 135.7596, "ekidiv": "B", "selectname": "Shijo Karasuma"},
        "Karasuma Oike(Kyoto City Bus)": {"lat": 35.0108, "lng": 135.7598, "ekidiv": "B", "selectname": "Karasuma Oike"},
        "Karasuma Oike(Kyoto Municipal Subway)": {"lat": 35.0110, "lng": 135.7594, "ekidiv": "R", "selectname": "Karasuma Oike"},
        "Kyoto(JR West)": {"lat": 34.9858, "lng": 135.7588, "ekidiv": "R", "selectname": "Kyoto"},
        "Kyoto(Kyoto Municipal Subway)": {"lat": 34.9860, "lng": 135.7592, "ekidiv": "R", "selectname": "Kyoto"},
    },
    "coefficient": {},
}

JA_LANDMARKS = {
    "data": {
        "LM00000001": {"name": "清水寺", "yomi": "きよみずでら", "lat": 34.9949, "lng": 135.7850, "category": 1},
        "LM00002101": {"name": "銀閣寺", "yomi": "ぎんかくじ", "lat": 35.0270, "lng": 135.7982, "category": 1},
        "LM00000534": {"name": "渡月橋", "yomi": "とげつきょう", "lat": 35.0130, "lng": 135.6778, "category": 2},
        "LM00000100": {"name": "京都御所", "yomi": "きょうとごしょ", "lat": 35.0254, "lng": 135.7621, "category": 3},
    }
}

EN_LANDMARKS = {
    "data": {
        "LM00000001": {"name": "Kiyomizu-dera Temple", "lat": 34.9949, "lng": 135.7850, "category": 1},
        "LM00002101": {"name": "Ginkaku-ji Temple", "lat": 35.0270, "lng": 135.7982, "category": 1},
        "LM00000534": {"name": "Togetsukyo Bridge", "lat": 35.0130, "lng": 135.6778, "category": 2},
        "LM00000100": {"name": "Kyoto Imperial Palace", "lat": 35.0254, "lng": 135.7621, "category": 3},
    }
}

PACKED_BUS_ROUTE = "busstop$浄土寺$$$bus$市バス203系統$$0$1800$1800$h$0$16$id$busstop$四条烏丸$$$"
PACKED_BUS_WALK_ROUTE = (
    "busstop$浄土寺$$$bus$市バス203系統$$0$1800$1800$h$0$16$id"
    "$busstop$四条烏丸$$$walk$150$120$spot$四条烏丸$$"
)

DETAILED_SCHEDULE_HTML = f"""
<html><body>
<form id="search"><input type="hidden" name="dt" value="2025/07/7"></form>
<div class="route" id="route1">
  <table class="summary">
    <tr>
      <td class="time_1">17:28発 →18:00着</td>
      <td class="time_2">所要時間：32分 (バス 30分、電車 0分、徒歩 2分）</td>
      <td class="time_3">乗換：0回　運賃：230円</td>
    </tr>
  </table>
  <table class="route_detail">
    <tr class="place">
      <td class="time">17:28発</td>
      <td class="name">浄土寺 (京都市バス) <span class="platform">Aのりば</span></td>
      <td class="fare">230円</td>
    </tr>
    <tr class="transit">
      <td class="desc"><span class="line">市バス203系統</span> 30分 16停留所</td>
    </tr>
    <tr class="place">
      <td class="time">17:58着 17:58発</td>
      <td class="name">四条烏丸 (京都市バス)</td>
      <td class="fare"></td>
    </tr>
    <tr class="transit">
      <td class="desc">徒歩 2分</td>
    </tr>
    <tr class="place">
      <td class="time">18:00着</td>
      <td class="name">四条烏丸</td>
    </tr>
  </table>
</div>
<form id="resultInfo">
  <input type="hidden" name="rt0" value="{PACKED_BUS_WALK_ROUTE}">
</form>
</body></html>
"""

MIDNIGHT_HTML = """
<html><body>
<input type="hidden" name="dt" value="2025/07/7">
<div class="route">
  <table>
    <tr>
      <td class="time_1">23:45発 →00:25着</td>
      <td class="time_2">所要時間：40分</td>
      <td class="time_3">乗換：1回　運賃：460円</td>
    </tr>
  </table>
  <table class="route_detail">
    <tr class="place"><td class="time">23:45発</td><td class="name">四条河原町</td></tr>
    <tr class="transit"><td class="desc">徒歩 3分</td></tr>
    <tr class="place">
      <td class="time">23:48着 23:50発</td>
      <td class="name">四条河原町 (京都市バス) 【のりばB】</td>
      <td class="fare">230円</td>
    </tr>
    <tr class="transit"><td class="desc"><span class="line">市バス5系統</span> 8分 5停留所</td></tr>
    <tr class="place"><td class="time">23:58着 23:58発</td><td class="name">三条京阪前 (京都市バス)</td></tr>
    <tr class="transit"><td class="desc">徒歩 4分</td></tr>
    <tr class="place">
      <td class="time">00:02着 00:05発</td>
      <td class="name">三条 <span class="direction">出町柳方面</span></td>
      <td class="fare">230円</td>
    </tr>
    <tr class="transit"><td class="desc">京阪本線 20分 7駅</td></tr>
    <tr class="place"><td class="time">00:25着</td><td class="name">中書島</td></tr>
  </table>
</div>
</body></html>
"""

COARSE_RESULTS_HTML = """
<html><body>
<input type="hidden" name="dt" value="2025/07/7">
<div id="result_list">
  <table>
    <tr><th>発着</th><th>所要時間</th><th>乗換</th><th>運賃</th></tr>
    <tr data-href="#route1">
      <td class="dep_arr">08:10発 → 08:45着</td>
      <td class="time">35分</td>
      <td class="xfer">1回</td>
      <td class="fare">230円</td>
    </tr>
    <tr data-href="#route2">
      <td class="dep_arr">08:20発 → 09:05着</td>
      <td class="time">45分</td>
      <td class="xfer">0回</td>
      <td class="fare">260円</td>
    </tr>
  </table>
</div>
</body></html>
"""

NO_RESULTS_HTML = f"""
<html><body>
<p class="error">該当する結果が見つかりませんでした。条件を変えて再検索してください。</p>
<input type="hidden" name="dt" value="2025/07/7">
<div class="route">
  <table><tr>
    <td class="time_1">17:28発 →18:00着</td>
    <td class="time_2">所要時間：32分</td>
    <td class="time_3">乗換：0回　運賃：230円</td>
  </tr></table>
</div>
<form id="resultInfo"><input type="hidden" name="rt0" value="{PACKED_BUS_ROUTE}"></form>
</body></html>
"""


@pytest.fixture
def ja_tables():
    """Japanese reference tables."""
    return ReferenceTables.from_raw("ja", JA_MASTER, JA_LANDMARKS)


@pytest.fixture
def en_master():
    """Raw English master data."""
    return copy.deepcopy(EN_MASTER)


@pytest.fixture
def en_tables():
    """English reference tables."""
    return ReferenceTables.from_raw("en", EN_MASTER, EN_LANDMARKS)


@pytest.fixture
def store(ja_tables, en_tables):
    """Reference store with both languages registered in memory."""
    store = ReferenceDataStore()
    store.register(ja_tables)
    store.register(en_tables)
    return store


@pytest.fixture
def data_dir(tmp_path):
    """Reference data directory; ja master is gzip-compressed, en is plain."""
    (tmp_path / "ja").mkdir()
    (tmp_path / "en").mkdir()
    with gzip.open(tmp_path / "ja" / "master.json.gz", "wt", encoding="utf-8") as f:
        json.dump(JA_MASTER, f, ensure_ascii=False)
    (tmp_path / "ja" / "landmark-data.json").write_text(
        json.dumps(JA_LANDMARKS, ensure_ascii=False), encoding="utf-8"
    )
    (tmp_path / "en" / "master.json").write_text(
        json.dumps(EN_MASTER, ensure_ascii=False), encoding="utf-8"
    )
    return tmp_path


@pytest.fixture
def detailed_schedule_html():
    return DETAILED_SCHEDULE_HTML


@pytest.fixture
def midnight_html():
    return MIDNIGHT_HTML


@pytest.fixture
def coarse_results_html():
    return COARSE_RESULTS_HTML


@pytest.fixture
def no_results_html():
    return NO_RESULTS_HTML


@pytest.fixture
def byte_encoding():
    """Offline tiktoken encoding with one token per UTF-8 byte."""
    return tiktoken.Encoding(
        name="bytes",
        pat_str=r"\S+|\s+",
        mergeable_ranks={bytes([i]): i for i in range(256)},
        special_tokens={},
    )


@pytest.fixture
def budgeter(byte_encoding):
    """Budgeter counting UTF-8 bytes, so budgets in tests are exact."""
    return ResponseBudgeter(encoding=byte_encoding)


@pytest.fixture
def fetcher(store):
    """Fetcher without back-off between attempts."""
    return RouteHtmlFetcher(store, base_url="https://example.test", retries=3, backoff=0)


@pytest.fixture
def services(store, budgeter, fetcher):
    """Services wired to in-memory reference data and the byte budgeter."""
    return TransitServices(
        settings=Settings(),
        store=store,
        budgeter=budgeter,
        routes=RouteSearchService(store, fetcher, budgeter),
        stops=StopSearchService(store, budgeter),
    )


@pytest.fixture
def packed_bus_route():
    return PACKED_BUS_ROUTE


@pytest.fixture
def packed_bus_walk_route():
    return PACKED_BUS_WALK_ROUTE
