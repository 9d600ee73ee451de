"""Shop-floor keywords matched against doc types, item names and stations.

The shop's own (Traditional Chinese) terms are listed first; the English
forms are accepted as well for rows keyed in by the overseas office.
"""

EXEMPT_DOC_TYPE_KEYWORDS = (
    "素材單",
    "包裝單",
    "改單",
    "示意圖",
    "material slip",
    "packing slip",
    "order change",
    "mockup",
)

OUTSOURCED_DOC_TYPE_KEYWORDS = ("委外", "outsourced")
STEADY_STATE_DOC_TYPE_KEYWORDS = ("常平", "steady-state-factory")

ACRYLIC_ITEM_KEYWORDS = ("壓克力", "acrylic")

# Item codes starting with this letter are produced outside the main plant.
OUTSIDE_PLANT_ITEM_PREFIX = "C"

PACKING_STATION_KEYWORDS = ("包裝", "packing")
PRINTING_STATION_KEYWORDS = ("印刷", "printing")
LASER_STATION_KEYWORDS = ("雷切", "laser-cut")

UNKNOWN_STATION = "未知"
