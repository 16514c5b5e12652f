"""Currency -- ISO 4217 registry with minor-unit precision."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from pricing_kernel.exceptions import InvalidCurrencyError


@dataclass(frozen=True)
class CurrencyInfo:
    """A single ISO 4217 currency and its minor-unit digits."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount, usable with Decimal.quantize()."""
        return Decimal(1).scaleb(-self.decimal_places)


def _table(*rows: tuple[str, int, str]) -> dict[str, CurrencyInfo]:
    return {code: CurrencyInfo(code, places, name) for code, places, name in rows}


class CurrencyRegistry:
    """
    Registry of the ISO 4217 currencies the pricing engine accepts.

    The engine never looks up precision implicitly -- callers pass
    ``currency_decimals`` -- but route handlers use ``get_decimal_places``
    to choose that value for a quote's currency.
    """

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = _table(
        # Two decimal places
        ("AED", 2, "UAE Dirham"),
        ("AFN", 2, "Afghan Afghani"),
        ("ALL", 2, "Albanian Lek"),
        ("AMD", 2, "Armenian Dram"),
        ("ANG", 2, "Netherlands Antillean Guilder"),
        ("AOA", 2, "Angolan Kwanza"),
        ("ARS", 2, "Argentine Peso"),
        ("AUD", 2, "Australian Dollar"),
        ("AWG", 2, "Aruban Florin"),
        ("AZN", 2, "Azerbaijan Manat"),
        ("BAM", 2, "Bosnia and Herzegovina Convertible Mark"),
        ("BBD", 2, "Barbadian Dollar"),
        ("BDT", 2, "Bangladeshi Taka"),
        ("BGN", 2, "Bulgarian Lev"),
        ("BMD", 2, "Bermudian Dollar"),
        ("BND", 2, "Brunei Dollar"),
        ("BOB", 2, "Bolivian Boliviano"),
        ("BOV", 2, "Bolivian Mvdol"),
        ("BRL", 2, "Brazilian Real"),
        ("BSD", 2, "Bahamian Dollar"),
        ("BTN", 2, "Bhutanese Ngultrum"),
        ("BWP", 2, "Botswana Pula"),
        ("BYN", 2, "Belarusian Ruble"),
        ("BZD", 2, "Belize Dollar"),
        ("CAD", 2, "Canadian Dollar"),
        ("CDF", 2, "Congolese Franc"),
        ("CHE", 2, "WIR Euro"),
        ("CHF", 2, "Swiss Franc"),
        ("CHW", 2, "WIR Franc"),
        ("CNY", 2, "Chinese Yuan"),
        ("COP", 2, "Colombian Peso"),
        ("COU", 2, "Colombian Unidad de Valor Real"),
        ("CRC", 2, "Costa Rican Colon"),
        ("CUC", 2, "Cuban Convertible Peso"),
        ("CUP", 2, "Cuban Peso"),
        ("CVE", 2, "Cape Verdean Escudo"),
        ("CZK", 2, "Czech Koruna"),
        ("DKK", 2, "Danish Krone"),
        ("DOP", 2, "Dominican Peso"),
        ("DZD", 2, "Algerian Dinar"),
        ("EGP", 2, "Egyptian Pound"),
        ("ERN", 2, "Eritrean Nakfa"),
        ("ETB", 2, "Ethiopian Birr"),
        ("EUR", 2, "Euro"),
        ("FJD", 2, "Fijian Dollar"),
        ("FKP", 2, "Falkland Islands Pound"),
        ("GBP", 2, "Pound Sterling"),
        ("GEL", 2, "Georgian Lari"),
        ("GHS", 2, "Ghanaian Cedi"),
        ("GIP", 2, "Gibraltar Pound"),
        ("GMD", 2, "Gambian Dalasi"),
        ("GTQ", 2, "Guatemalan Quetzal"),
        ("GYD", 2, "Guyanese Dollar"),
        ("HKD", 2, "Hong Kong Dollar"),
        ("HNL", 2, "Honduran Lempira"),
        ("HRK", 2, "Croatian Kuna"),
        ("HTG", 2, "Haitian Gourde"),
        ("HUF", 2, "Hungarian Forint"),
        ("IDR", 2, "Indonesian Rupiah"),
        ("ILS", 2, "Israeli New Shekel"),
        ("INR", 2, "Indian Rupee"),
        ("IRR", 2, "Iranian Rial"),
        ("JMD", 2, "Jamaican Dollar"),
        ("KES", 2, "Kenyan Shilling"),
        ("KGS", 2, "Kyrgyzstani Som"),
        ("KHR", 2, "Cambodian Riel"),
        ("KPW", 2, "North Korean Won"),
        ("KYD", 2, "Cayman Islands Dollar"),
        ("KZT", 2, "Kazakhstani Tenge"),
        ("LAK", 2, "Lao Kip"),
        ("LBP", 2, "Lebanese Pound"),
        ("LKR", 2, "Sri Lankan Rupee"),
        ("LRD", 2, "Liberian Dollar"),
        ("LSL", 2, "Lesotho Loti"),
        ("MAD", 2, "Moroccan Dirham"),
        ("MDL", 2, "Moldovan Leu"),
        ("MGA", 2, "Malagasy Ariary"),
        ("MKD", 2, "Macedonian Denar"),
        ("MMK", 2, "Myanmar Kyat"),
        ("MNT", 2, "Mongolian Tugrik"),
        ("MOP", 2, "Macanese Pataca"),
        ("MRU", 2, "Mauritanian Ouguiya"),
        ("MUR", 2, "Mauritian Rupee"),
        ("MVR", 2, "Maldivian Rufiyaa"),
        ("MWK", 2, "Malawian Kwacha"),
        ("MXN", 2, "Mexican Peso"),
        ("MXV", 2, "Mexican Unidad de Inversion"),
        ("MYR", 2, "Malaysian Ringgit"),
        ("MZN", 2, "Mozambican Metical"),
        ("NAD", 2, "Namibian Dollar"),
        ("NGN", 2, "Nigerian Naira"),
        ("NIO", 2, "Nicaraguan Cordoba"),
        ("NOK", 2, "Norwegian Krone"),
        ("NPR", 2, "Nepalese Rupee"),
        ("NZD", 2, "New Zealand Dollar"),
        ("PAB", 2, "Panamanian Balboa"),
        ("PEN", 2, "Peruvian Sol"),
        ("PGK", 2, "Papua New Guinean Kina"),
        ("PHP", 2, "Philippine Peso"),
        ("PKR", 2, "Pakistani Rupee"),
        ("PLN", 2, "Polish Zloty"),
        ("QAR", 2, "Qatari Riyal"),
        ("RON", 2, "Romanian Leu"),
        ("RSD", 2, "Serbian Dinar"),
        ("RUB", 2, "Russian Ruble"),
        ("SAR", 2, "Saudi Riyal"),
        ("SBD", 2, "Solomon Islands Dollar"),
        ("SCR", 2, "Seychellois Rupee"),
        ("SDG", 2, "Sudanese Pound"),
        ("SEK", 2, "Swedish Krona"),
        ("SGD", 2, "Singapore Dollar"),
        ("SHP", 2, "Saint Helena Pound"),
        ("SLE", 2, "Sierra Leonean Leone"),
        ("SLL", 2, "Sierra Leonean Leone (old)"),
        ("SOS", 2, "Somali Shilling"),
        ("SRD", 2, "Surinamese Dollar"),
        ("SSP", 2, "South Sudanese Pound"),
        ("STN", 2, "Sao Tome and Principe Dobra"),
        ("SVC", 2, "Salvadoran Colon"),
        ("SYP", 2, "Syrian Pound"),
        ("SZL", 2, "Swazi Lilangeni"),
        ("THB", 2, "Thai Baht"),
        ("TJS", 2, "Tajikistani Somoni"),
        ("TMT", 2, "Turkmenistan Manat"),
        ("TOP", 2, "Tongan Paanga"),
        ("TRY", 2, "Turkish Lira"),
        ("TTD", 2, "Trinidad and Tobago Dollar"),
        ("TWD", 2, "New Taiwan Dollar"),
        ("TZS", 2, "Tanzanian Shilling"),
        ("UAH", 2, "Ukrainian Hryvnia"),
        ("USD", 2, "US Dollar"),
        ("USN", 2, "US Dollar (Next day)"),
        ("UYU", 2, "Uruguayan Peso"),
        ("UZS", 2, "Uzbekistani Som"),
        ("VED", 2, "Venezuelan Bolivar Digital"),
        ("VES", 2, "Venezuelan Bolivar Soberano"),
        ("WST", 2, "Samoan Tala"),
        ("XCD", 2, "East Caribbean Dollar"),
        ("YER", 2, "Yemeni Rial"),
        ("ZAR", 2, "South African Rand"),
        ("ZMW", 2, "Zambian Kwacha"),
        ("ZWL", 2, "Zimbabwean Dollar"),
        # Zero decimal places
        ("BIF", 0, "Burundian Franc"),
        ("CLP", 0, "Chilean Peso"),
        ("DJF", 0, "Djiboutian Franc"),
        ("GNF", 0, "Guinean Franc"),
        ("ISK", 0, "Icelandic Krona"),
        ("JPY", 0, "Japanese Yen"),
        ("KMF", 0, "Comorian Franc"),
        ("KRW", 0, "South Korean Won"),
        ("PYG", 0, "Paraguayan Guarani"),
        ("RWF", 0, "Rwandan Franc"),
        ("UGX", 0, "Ugandan Shilling"),
        ("UYI", 0, "Uruguay Peso en Unidades Indexadas"),
        ("VND", 0, "Vietnamese Dong"),
        ("VUV", 0, "Vanuatu Vatu"),
        ("XAF", 0, "Central African CFA Franc"),
        ("XAG", 0, "Silver (troy ounce)"),
        ("XAU", 0, "Gold (troy ounce)"),
        ("XBA", 0, "European Composite Unit"),
        ("XBB", 0, "European Monetary Unit"),
        ("XBC", 0, "European Unit of Account 9"),
        ("XBD", 0, "European Unit of Account 17"),
        ("XDR", 0, "Special Drawing Rights"),
        ("XOF", 0, "West African CFA Franc"),
        ("XPD", 0, "Palladium (troy ounce)"),
        ("XPF", 0, "CFP Franc"),
        ("XPT", 0, "Platinum (troy ounce)"),
        ("XSU", 0, "Sucre"),
        ("XTS", 0, "Testing Code"),
        ("XUA", 0, "ADB Unit of Account"),
        ("XXX", 0, "No currency"),
        # Three decimal places
        ("BHD", 3, "Bahraini Dinar"),
        ("IQD", 3, "Iraqi Dinar"),
        ("JOD", 3, "Jordanian Dinar"),
        ("KWD", 3, "Kuwaiti Dinar"),
        ("LYD", 3, "Libyan Dinar"),
        ("OMR", 3, "Omani Rial"),
        ("TND", 3, "Tunisian Dinar"),
        # Four decimal places (funds codes)
        ("CLF", 4, "Chilean Unidad de Fomento"),
        ("UYW", 4, "Unidad Previsional"),
    )

    @classmethod
    def is_valid(cls, code: object) -> bool:
        """Check if a currency code is a known ISO 4217 code."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        """Get currency information by code."""
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Minor-unit digits for a currency; unknown codes get the default."""
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def validate(cls, code: object) -> str:
        """Validate and normalize a currency code.

        Raises:
            InvalidCurrencyError: if ``code`` is not a known ISO 4217 code.
        """
        if not code or not isinstance(code, str):
            raise InvalidCurrencyError(code)
        normalized = code.upper().strip()
        if len(normalized) != 3 or normalized not in cls._CURRENCIES:
            raise InvalidCurrencyError(code)
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        """Get all valid currency codes."""
        return frozenset(cls._CURRENCIES)
