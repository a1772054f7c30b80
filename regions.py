"""
Static catalog of the 69 Algerian wilayas with default e-commerce shipping prices (DZD).

These are the seed/fallback prices; administrators override them per wilaya
through the shipping_rate collection.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class Region:
    id: int
    name: str
    home_delivery: float
    stop_desk: float


_WILAYAS: Tuple[Tuple[int, str, float, float], ...] = (
    (1, "Adrar", 1400, 900),
    (2, "Chlef", 750, 450),
    (3, "Laghouat", 950, 600),
    (4, "Oum El Bouaghi", 800, 450),
    (5, "Batna", 800, 450),
    (6, "Béjaïa", 700, 450),
    (7, "Biskra", 900, 550),
    (8, "Béchar", 1100, 650),
    (9, "Blida", 500, 350),
    (10, "Bouira", 650, 400),
    (11, "Tamanrasset", 1600, 1000),
    (12, "Tébessa", 850, 500),
    (13, "Tlemcen", 800, 500),
    (14, "Tiaret", 800, 450),
    (15, "Tizi Ouzou", 650, 400),
    (16, "Alger", 400, 300),
    (17, "Djelfa", 900, 550),
    (18, "Jijel", 750, 450),
    (19, "Sétif", 750, 450),
    (20, "Saïda", 850, 500),
    (21, "Skikda", 750, 450),
    (22, "Sidi Bel Abbès", 800, 450),
    (23, "Annaba", 750, 450),
    (24, "Guelma", 800, 450),
    (25, "Constantine", 750, 450),
    (26, "Médéa", 650, 400),
    (27, "Mostaganem", 750, 450),
    (28, "M'Sila", 800, 500),
    (29, "Mascara", 800, 450),
    (30, "Ouargla", 1000, 600),
    (31, "Oran", 700, 450),
    (32, "El Bayadh", 1000, 600),
    (33, "Illizi", 1600, 1000),
    (34, "Bordj Bou Arréridj", 750, 450),
    (35, "Boumerdès", 500, 350),
    (36, "El Tarf", 800, 500),
    (37, "Tindouf", 1600, 1000),
    (38, "Tissemsilt", 800, 500),
    (39, "El Oued", 1000, 600),
    (40, "Khenchela", 850, 500),
    (41, "Souk Ahras", 850, 500),
    (42, "Tipaza", 550, 350),
    (43, "Mila", 750, 450),
    (44, "Aïn Defla", 700, 450),
    (45, "Naâma", 1000, 600),
    (46, "Aïn Témouchent", 800, 500),
    (47, "Ghardaïa", 1000, 600),
    (48, "Relizane", 750, 450),
    (49, "Timimoun", 1400, 900),
    (50, "Bordj Badji Mokhtar", 1800, 1100),
    (51, "Ouled Djellal", 950, 600),
    (52, "Béni Abbès", 1300, 800),
    (53, "In Salah", 1600, 1000),
    (54, "In Guezzam", 1800, 1100),
    (55, "Touggourt", 1000, 600),
    (56, "Djanet", 1800, 1100),
    (57, "El M'Ghair", 1000, 600),
    (58, "El Meniaa", 1100, 700),
    (59, "Aflou", 950, 600),
    (60, "Barika", 850, 500),
    (61, "Ksar Chellala", 850, 550),
    (62, "Messaad", 950, 600),
    (63, "Aïn Oussera", 850, 550),
    (64, "Bou Saâda", 850, 550),
    (65, "El Abiodh Sidi Cheikh", 1100, 700),
    (66, "El Kantara", 900, 550),
    (67, "Bir El Ater", 900, 550),
    (68, "Ksar El Boukhari", 750, 450),
    (69, "El Aricha", 900, 550),
)

REGIONS: Tuple[Region, ...] = tuple(Region(*row) for row in _WILAYAS)

_BY_ID: Dict[int, Region] = {region.id: region for region in REGIONS}


def get_region(region_id: Optional[int]) -> Optional[Region]:
    if region_id is None:
        return None
    return _BY_ID.get(region_id)


def is_known_region(region_id: Optional[int]) -> bool:
    return get_region(region_id) is not None
