"""
Données fiscales statiques.
- STATE_NAMES: code USPS -> nom de juridiction.
- STATE_TAX_RATES: taux combiné moyen (en %) par juridiction.
Le code d'État d'un ZIP vient de la base du paquet `zipcodes`; les codes
militaires (AA/AE/AP) n'ont pas d'entrée ici et restent non résolus.
"""
from decimal import Decimal
from typing import Dict

STATE_NAMES: Dict[str, str] = {
    "AL": "Alabama",
    "AK": "Alaska",
    "AZ": "Arizona",
    "AR": "Arkansas",
    "CA": "California",
    "CO": "Colorado",
    "CT": "Connecticut",
    "DE": "Delaware",
    "DC": "District of Columbia",
    "FL": "Florida",
    "GA": "Georgia",
    "HI": "Hawaii",
    "ID": "Idaho",
    "IL": "Illinois",
    "IN": "Indiana",
    "IA": "Iowa",
    "KS": "Kansas",
    "KY": "Kentucky",
    "LA": "Louisiana",
    "ME": "Maine",
    "MD": "Maryland",
    "MA": "Massachusetts",
    "MI": "Michigan",
    "MN": "Minnesota",
    "MS": "Mississippi",
    "MO": "Missouri",
    "MT": "Montana",
    "NE": "Nebraska",
    "NV": "Nevada",
    "NH": "New Hampshire",
    "NJ": "New Jersey",
    "NM": "New Mexico",
    "NY": "New York",
    "NC": "North Carolina",
    "ND": "North Dakota",
    "OH": "Ohio",
    "OK": "Oklahoma",
    "OR": "Oregon",
    "PA": "Pennsylvania",
    "PR": "Puerto Rico",
    "RI": "Rhode Island",
    "SC": "South Carolina",
    "SD": "South Dakota",
    "TN": "Tennessee",
    "TX": "Texas",
    "UT": "Utah",
    "VT": "Vermont",
    "VA": "Virginia",
    "WA": "Washington",
    "WV": "West Virginia",
    "WI": "Wisconsin",
    "WY": "Wyoming",
}

STATE_TAX_RATES: Dict[str, Decimal] = {
    "Alabama": Decimal("9.29"),
    "Alaska": Decimal("1.82"),
    "Arizona": Decimal("8.38"),
    "Arkansas": Decimal("9.45"),
    "California": Decimal("8.85"),
    "Colorado": Decimal("7.81"),
    "Connecticut": Decimal("6.35"),
    "Delaware": Decimal("0.00"),
    "District of Columbia": Decimal("6.00"),
    "Florida": Decimal("7.00"),
    "Georgia": Decimal("7.38"),
    "Hawaii": Decimal("4.50"),
    "Idaho": Decimal("6.03"),
    "Illinois": Decimal("8.86"),
    "Indiana": Decimal("7.00"),
    "Iowa": Decimal("6.94"),
    "Kansas": Decimal("8.65"),
    "Kentucky": Decimal("6.00"),
    "Louisiana": Decimal("9.56"),
    "Maine": Decimal("5.50"),
    "Maryland": Decimal("6.00"),
    "Massachusetts": Decimal("6.25"),
    "Michigan": Decimal("6.00"),
    "Minnesota": Decimal("8.04"),
    "Mississippi": Decimal("7.06"),
    "Missouri": Decimal("8.39"),
    "Montana": Decimal("0.00"),
    "Nebraska": Decimal("6.97"),
    "Nevada": Decimal("8.24"),
    "New Hampshire": Decimal("0.00"),
    "New Jersey": Decimal("6.63"),
    "New Mexico": Decimal("7.62"),
    "New York": Decimal("8.53"),
    "North Carolina": Decimal("7.00"),
    "North Dakota": Decimal("7.04"),
    "Ohio": Decimal("7.24"),
    "Oklahoma": Decimal("8.99"),
    "Oregon": Decimal("0.00"),
    "Pennsylvania": Decimal("6.34"),
    "Puerto Rico": Decimal("11.50"),
    "Rhode Island": Decimal("7.00"),
    "South Carolina": Decimal("7.50"),
    "South Dakota": Decimal("6.11"),
    "Tennessee": Decimal("9.55"),
    "Texas": Decimal("8.20"),
    "Utah": Decimal("7.25"),
    "Vermont": Decimal("6.36"),
    "Virginia": Decimal("5.77"),
    "Washington": Decimal("9.38"),
    "West Virginia": Decimal("6.57"),
    "Wisconsin": Decimal("5.70"),
    "Wyoming": Decimal("5.44"),
}
