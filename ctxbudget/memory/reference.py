"""
Reference data for fact extraction.

ORGANIZATION_MAPPING and SHANGHAI_REGION_MAPPING mirror the recruitment
platform's organization and region ids; the alias tables add the names
candidates actually type in chat.
"""

from dataclasses import dataclass, field

# Organization id -> business brand
ORGANIZATION_MAPPING: dict[int, str] = {
    5: "肯德基",
    746: "来伊份",
    850: "上海必胜客",
    865: "奥乐齐",
    941: "成都你六姐",
    985: "大米先生",
    1072: "天津肯德基",
    1102: "嘉定山姆",
    1107: "成都必胜客",
    1161: "M Stand",
    77: "ZARA",
    183: "西贝莜面村",
    188: "哈根达斯",
    744: "波司登",
    883: "李维斯",
    887: "摩提工房-西树泡芙",
    1043: "北京肯德基",
    1045: "北京必胜客",
    1097: "Drunk Baker",
    1110: "小肥羊",
    1111: "黄记煌",
    1116: "成都肯德基",
    1131: "杭州肯德基",
    1142: "深圳肯德基",
    1149: "广州肯德基",
    1150: "高科西山姆",
    1151: "嘉松中路山姆",
    1152: "普陀真如山姆",
    1159: "佛山必胜客",
    1164: "塔可贝尔",
    1165: "左庭右院",
    1170: "可可牛",
    1167: "大连肯德基",
    870: "海底捞",
}

# Region id -> Shanghai district
SHANGHAI_REGION_MAPPING: dict[int, str] = {
    310101: "黄浦区",
    310104: "徐汇区",
    310105: "长宁区",
    310106: "静安区",
    310107: "普陀区",
    310108: "闸北区",  # merged into 静安区, still present in older records
    310109: "虹口区",
    310110: "杨浦区",
    310112: "闵行区",
    310113: "宝山区",
    310114: "嘉定区",
    310115: "浦东新区",
    310116: "金山区",
    310117: "松江区",
    310118: "青浦区",
    310120: "奉贤区",
    310151: "崇明区",
}

# Brand -> aliases. Regional brands are separate brands, not aliases of the parent.
BRAND_ALIASES: dict[str, list[str]] = {
    "肯德基": ["肯德基", "KFC", "kfc"],
    "必胜客": ["必胜客", "Pizza Hut", "PizzaHut"],
    "奥乐齐": ["奥乐齐", "ALDI", "Aldi"],
    "大米先生": ["大米先生"],
    "成都你六姐": ["成都你六姐", "你六姐"],
    "海底捞": ["海底捞", "海捞"],
    "大连肯德基": ["大连肯德基", "大连KFC", "大连kfc"],
    "天津肯德基": ["天津肯德基", "天津KFC", "天津kfc"],
    "北京肯德基": ["北京肯德基", "北京KFC", "北京kfc"],
    "成都肯德基": ["成都肯德基", "成都KFC", "成都kfc"],
    "深圳肯德基": ["深圳肯德基", "深圳KFC", "深圳kfc"],
    "广州肯德基": ["广州肯德基", "广州KFC", "广州kfc"],
    "杭州肯德基": ["杭州肯德基", "杭州KFC", "杭州kfc"],
    "上海必胜客": ["上海必胜客", "上海Pizza Hut", "上海PizzaHut"],
    "北京必胜客": ["北京必胜客", "北京Pizza Hut", "北京PizzaHut"],
    "成都必胜客": ["成都必胜客", "成都Pizza Hut", "成都PizzaHut"],
    "佛山必胜客": ["佛山必胜客", "佛山Pizza Hut", "佛山PizzaHut"],
    # Common brands outside the business list, still worth recognizing
    "麦当劳": ["麦当劳", "金拱门", "McDonald", "M记"],
    "星巴克": ["星巴克", "Starbucks", "星爸爸"],
    "汉堡王": ["汉堡王", "Burger King", "BK"],
    "瑞幸": ["瑞幸", "luckin", "Luckin"],
    "Manner": ["Manner", "manner"],
    "蜜雪冰城": ["蜜雪冰城", "蜜雪"],
    "喜茶": ["喜茶", "HEYTEA"],
    "奈雪": ["奈雪", "奈雪的茶"],
    "全家": ["全家", "FamilyMart"],
    "罗森": ["罗森", "LAWSON", "Lawson"],
    "7-11": ["7-11", "711", "Seven Eleven"],
}

# District -> names people use for it
DISTRICT_ALIASES: dict[str, list[str]] = {
    "黄浦区": ["黄浦区", "黄浦"],
    "徐汇区": ["徐汇区", "徐汇"],
    "长宁区": ["长宁区", "长宁"],
    "静安区": ["静安区", "静安"],
    "普陀区": ["普陀区", "普陀"],
    "闸北区": ["闸北区", "闸北"],
    "虹口区": ["虹口区", "虹口"],
    "杨浦区": ["杨浦区", "杨浦"],
    "闵行区": ["闵行区", "闵行"],
    "宝山区": ["宝山区", "宝山"],
    "嘉定区": ["嘉定区", "嘉定"],
    "浦东新区": ["浦东新区", "浦东"],
    "金山区": ["金山区", "金山"],
    "松江区": ["松江区", "松江"],
    "青浦区": ["青浦区", "青浦"],
    "奉贤区": ["奉贤区", "奉贤"],
    "崇明区": ["崇明区", "崇明"],
}

# Business areas and landmarks
AREAS: list[str] = [
    "陆家嘴", "张江", "世纪公园", "花木", "川沙", "周浦", "康桥",
    "徐家汇", "漕河泾", "田林", "康健",
    "南京西路", "人民广场", "南京东路", "外滩", "豫园",
    "中山公园", "江苏路", "镇宁路",
    "五角场", "大学路", "复旦", "同济",
    "淮海路", "新天地", "打浦桥",
    "七宝", "莘庄", "春申", "颛桥",
    "九亭", "泗泾", "佘山", "新桥",
]

# Common metro stations
STATIONS: list[str] = [
    "人民广场站", "陆家嘴站", "静安寺站", "徐家汇站", "中山公园站", "虹桥站",
    "龙阳路站", "世纪大道站", "南京东路站", "南京西路站", "张江高科站", "九亭站",
]

# Schedule preference -> keywords
TIME_PATTERNS: dict[str, list[str]] = {
    "早班": ["早班", "早上", "上午", "白天"],
    "晚班": ["晚班", "夜班", "晚上", "夜里", "通宵"],
    "周末": ["周末", "周六", "周日", "双休"],
    "兼职": ["兼职", "临时", "短期"],
    "全职": ["全职", "长期", "正式"],
    "灵活": ["灵活", "弹性", "自由安排"],
}

# Urgency level -> keywords, checked high first
URGENCY_PATTERNS: dict[str, list[str]] = {
    "high": ["急", "马上", "立刻", "现在", "今天", "赶紧", "急需", "尽快"],
    "medium": ["最近", "这几天", "本周", "近期"],
    "low": ["看看", "了解", "咨询", "随便问问"],
}


@dataclass(frozen=True)
class ReferenceData:
    """Everything the dictionaries are built from."""

    organizations: dict[int, str] = field(default_factory=lambda: dict(ORGANIZATION_MAPPING))
    regions: dict[int, str] = field(default_factory=lambda: dict(SHANGHAI_REGION_MAPPING))
    brand_aliases: dict[str, list[str]] = field(default_factory=lambda: dict(BRAND_ALIASES))
    district_aliases: dict[str, list[str]] = field(default_factory=lambda: dict(DISTRICT_ALIASES))
    areas: list[str] = field(default_factory=lambda: list(AREAS))
    stations: list[str] = field(default_factory=lambda: list(STATIONS))
