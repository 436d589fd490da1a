"""Built-in keyword and pattern rules for categorization.

The table is plain data: an ordered tuple of :class:`KeywordRule` and
:class:`PatternRule` entries evaluated top to bottom, first match wins.
Both variants match against text already passed through
:func:`kakeibo.merchant.normalize` (lower case, half-width alphanumerics,
dashes unified to ``-``), so keywords may be written in any width or case
but pattern sources must be written in normalized form.

Department stores (マルイ, 高島屋, 三越, ...) are deliberately absent: a
purchase there may be food, clothing or cosmetics, and leaving it
uncategorized is better than guessing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from kakeibo.merchant import normalize

FOOD = "食費"
TRANSPORT = "交通費"
DAILY = "日用品"
ENTERTAINMENT = "娯楽"
SUBSCRIPTION = "サブスク"
MEDICAL = "医療"
OTHER = "その他"

CATEGORIES = (FOOD, TRANSPORT, DAILY, ENTERTAINMENT, SUBSCRIPTION, MEDICAL, OTHER)


@dataclass(frozen=True)
class KeywordRule:
    """Substring match against normalized text.

    Keywords are normalized on construction.
    """

    category: str
    keywords: tuple[str, ...]

    def __post_init__(self) -> None:
        normalized = tuple(k for k in (normalize(k) for k in self.keywords) if k)
        object.__setattr__(self, "keywords", normalized)

    def matches(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)


@dataclass(frozen=True)
class PatternRule:
    """Regular-expression search against normalized text.

    Used for matches a plain substring cannot express: anchored suffixes,
    and short Latin brand names that must not match inside other words.
    """

    category: str
    patterns: tuple[re.Pattern[str], ...]

    def __post_init__(self) -> None:
        compiled = tuple(
            p if isinstance(p, re.Pattern) else re.compile(p) for p in self.patterns
        )
        object.__setattr__(self, "patterns", compiled)

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)


Rule = KeywordRule | PatternRule


def _word(*words: str) -> str:
    """Pattern matching any of *words* not surrounded by other Latin letters."""
    return r"(?<![a-z])(?:" + "|".join(re.escape(w) for w in words) + r")(?![a-z])"


DEFAULT_RULES: tuple[Rule, ...] = (
    KeywordRule(
        FOOD,
        (
            # Convenience stores
            "セブン", "セブンイレブン", "ファミリーマート", "ファミマ", "ローソン",
            "ミニストップ", "デイリーヤマザキ", "newdays", "ニューデイズ",
            "フアミリ",
            # Supermarkets
            "イオン", "イトーヨーカドー", "ライフ", "サミット", "マルエツ",
            "オーケー", "コープ", "生協", "まいばすけっと", "西友", "seiyu",
            "ヨークマート", "ベルク", "ヤオコー", "カスミ", "いなげや",
            "オオゼキ", "サンワ", "ビッグエー", "アコレ", "マックスバリュ",
            "文化堂",
            # Coffee
            "スターバックス", "starbucks", "タリーズ", "tullys", "ドトール",
            "コメダ", "サンマルク", "ベローチェ", "カフェ", "cafe",
            # Fast food and chains
            "マクドナルド", "mcdonald", "モスバーガー", "ケンタッキー", "kfc",
            "すき家", "吉野家", "松屋", "なか卯", "かつや", "てんや",
            "coco壱", "ココイチ", "カレーハウス", "ガスト", "サイゼリヤ",
            "デニーズ", "ジョナサン", "ロイヤルホスト", "びっくりドンキー",
            "バーミヤン", "夢庵", "ジョイフル", "ココス",
            "餃子の王将", "日高屋", "幸楽苑", "リンガーハット", "丸亀製麺",
            "はなまる", "ゆで太郎", "富士そば", "小諸そば",
            "すぱじろう", "銚子丸",
            # Bakeries and sweets
            "パン", "ベーカリー", "bakery", "ミスタードーナツ", "ミスド",
            "クリスピークリーム", "シャトレーゼ", "コージーコーナー",
            # Delivery
            "ubereats", "uber eats", "出前館", "demaecan",
            # Food courts and restaurants
            "フードコート", "food court", "ビストロ", "bistro", "食事処",
            # Vending machines
            "ジハンキ", "自販機", "コカコーラ", "コカ・コーラ",
            # Generic
            "レストラン", "食堂", "居酒屋", "弁当", "ランチ", "ディナー",
            "寿司", "すし", "ラーメン", "らーめん", "うどん", "そば", "焼肉", "焼き肉",
            "豚骨", "とんこつ",
        ),
    ),
    PatternRule(FOOD, (_word("ok"),)),
    KeywordRule(
        TRANSPORT,
        (
            # Rail
            "jr", "ジェイアール", "東京メトロ", "メトロ", "都営",
            "小田急", "京王", "東急", "西武", "東武", "京急", "京成",
            "相鉄", "阪急", "阪神", "南海", "近鉄", "名鉄",
            "suica", "pasmo", "icoca", "pitapa",
            # Taxi
            "タクシー", "taxi", "uber", "didi", "japan taxi",
            # Air
            "全日空", "日本航空", "peach", "jetstar",
            "skymark", "airdo", "solaseed",
            # Bus and highway
            "バス", "高速道路", "首都高", "nexco",
            # Fuel and parking
            "ガソリン", "エネオス", "eneos", "出光", "シェル", "shell",
            "コスモ", "cosmo", "駐車場", "パーキング", "parking", "タイムズ",
            # Rental cars
            "レンタカー", "オリックス", "トヨタレンタ", "ニッポンレンタ",
        ),
    ),
    PatternRule(TRANSPORT, (_word("go", "ana", "jal", "etc"), r"駅$")),
    KeywordRule(
        SUBSCRIPTION,
        (
            # Streaming
            "netflix", "ネットフリックス", "amazon prime", "アマゾンプライム",
            "hulu", "disney", "ディズニー", "spotify", "apple music",
            "youtube premium", "youtube music", "abema", "dazn", "u-next",
            "dアニメ", "d anime", "アニメ放題",
            # Apple billing
            "apple com bill", "ＡＰＰＬＥ", "apple.com/bill",
            # Software
            "adobe", "microsoft 365", "office 365", "google one", "icloud",
            "dropbox", "evernote", "1password", "notion",
            # Mobile and internet
            "docomo", "ドコモ", "softbank", "ソフトバンク",
            "rakuten mobile", "楽天モバイル", "ワイモバイル", "y!mobile",
            "ahamo", "povo", "linemo", "nuro", "フレッツ",
            # News
            "日経", "nikkei", "読売", "朝日", "毎日", "dマガジン",
            # Gyms
            "anytime fitness", "エニタイム", "コナミ", "ティップネス", "ルネサンス",
            # Generic
            "サブスク", "subscription", "月額", "年額",
        ),
    ),
    PatternRule(
        SUBSCRIPTION,
        (r"prime\s*(video|会員)", _word("aws", "au", "uq", "ocn")),
    ),
    KeywordRule(
        ENTERTAINMENT,
        (
            # Cinema
            "映画", "シネマ", "toho", "東宝", "イオンシネマ", "movix",
            "ユナイテッド", "109シネマ",
            # Games
            "ゲーム", "game", "playstation", "nintendo", "任天堂", "steam",
            "ゲームセンター", "アーケード", "ラウンドワン",
            # Books and music
            "本屋", "書店", "紀伊國屋", "tsutaya", "ツタヤ", "ゲオ",
            "ブックオフ", "book", "dvd", "blu-ray",
            # Theme parks
            "ディズニーランド", "ディズニーシー", "usj", "ユニバーサル",
            # Karaoke
            "カラオケ", "karaoke", "まねきねこ", "ビッグエコー", "シダックス",
            # Leisure
            "ボウリング", "ゴルフ", "スキー", "スノーボード", "温泉", "スパ",
        ),
    ),
    PatternRule(ENTERTAINMENT, (_word("geo", "cd"),)),
    KeywordRule(
        DAILY,
        (
            # Drugstores
            "マツモトキヨシ", "マツキヨ", "ウエルシア", "ツルハ", "スギ薬局",
            "サンドラッグ", "ココカラファイン", "トモズ", "tomod",
            "クリエイト", "セイムス", "ドラッグ", "drug",
            # Home centers and furniture
            "ホームセンター", "カインズ", "コーナン", "ビバホーム",
            "ジョイフル本田", "diy", "島忠", "ニトリ", "nitori",
            "ikea", "イケア", "無印良品", "muji",
            # 100 yen shops
            "ダイソー", "daiso", "セリア", "seria", "キャンドゥ", "cando",
            "100円", "100均", "百均",
            # Electronics
            "ヨドバシ", "yodobashi", "ビックカメラ", "bic camera",
            "ヤマダ電機", "yamada", "ケーズデンキ", "エディオン",
            # Clothing
            "ユニクロ", "uniqlo", "しまむら", "ワークマン",
            "h&m", "zara",
            # Cleaning and laundry
            "クリーニング", "コインランドリー",
        ),
    ),
    PatternRule(DAILY, (_word("gu", "gap"),)),
    KeywordRule(
        MEDICAL,
        (
            "病院", "クリニック", "医院", "歯科", "歯医者", "眼科", "皮膚科",
            "内科", "外科", "整形外科", "耳鼻", "産婦人科", "小児科",
            "薬局", "調剤", "pharmacy", "処方", "診療",
            "健康診断", "人間ドック",
        ),
    ),
    KeywordRule(
        OTHER,
        (
            # Post and delivery
            "郵便", "ゆうパック", "ヤマト", "佐川", "sagawa", "宅急便",
            # Bank fees
            "振込手数料", "atm手数料", "利用手数料",
            # Insurance
            "保険", "損保", "生命保険",
            # Tax and government
            "税金", "国税", "市税", "区役所", "市役所",
        ),
    ),
)
