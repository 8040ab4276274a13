from typing import TypedDict, List, Dict, Optional, Any

# ============================================================================
# Offer Data Models (wire names of the offer-processing service)
# ============================================================================

class BuyerData(TypedDict, total=False):
    """
    Buyer and offer terms collected in steps 2-4.

    Mirror fields (PI_SellPrice, PI_SellPriceW, EM_PC1) are required by the
    offer-generation service and are kept in sync by wizard.defaults.
    """
    Buyer1Name: str
    Buyer2Name: Optional[str]
    B_Email: str
    B_Status: str  # 'A married couple', 'A single person', 'Trust', ...
    ClosingDate: str  # YYYY-MM-DD

    offer_price_num: float
    offer_price_words: str
    PI_SellPrice: float
    PI_SellPriceW: str

    earnest_amount_num: float
    EM_PC1: float
    earnest_amount_delivery_days: int
    earnest_money_holder: str  # 'Closing Agent', 'Buyer Brokerage Firm', ...
    offer_expiration_days: int

    ChargesAssessments: str  # 'PrepaidBySeller', 'ProRated', 'PaidByBuyer'
    VerificationPeriod: str
    ServicesofUtils: Optional[str]
    addendums: List[str]


class FinancingAddendum(TypedDict, total=False):
    """
    Form 22A - Financing Addendum (step 5).
    """
    TypeofLoan: str  # CONVENTIONALFIRST, CONVENTIONALSECOND, FHA, BRIDGE, VA, USDA, OTHER
    DOWNPAYMENTTYPE: str  # 'PERCENTAGE' | 'DOLLAR'
    DOWNPAYMENTMAGNITUDE: float
    MAKEAPPLICATIONFORLOANSDAYS: int
    FINANCIALCONTINGENCY: str
    FINANCIALCONTINGENCYTIMEFRAME: int
    APPRAISALCONTINGENCY: str
    LOANCOSTPROVISIONS: Optional[str]
    BUYERPAYESECROWFEEFORVALOAN: Optional[str]  # VA loans only


class InspectionAddendum(TypedDict, total=False):
    """
    Form 35 - Inspection Addendum (step 6).
    """
    SEWERSURVEY: str  # 'YES' | 'NO'
    BUYERSNOTICEDAYS: Optional[int]
    SEWERREQUESTFORINSPECTIONREPORT: Optional[str]
    ADDITIONALTIMEFORINSPECTION: Optional[int]
    SEWERRESPONSETIMETOREQUESTFORREPAIRSORMODIFICATIONS: Optional[int]
    BUYERSREPLYTOSELLERSRESPONSE: Optional[int]
    REPAIRSCLOSINGDATE: Optional[int]
    NEIGHBORHOODREVIEWCONTINGENCYCHECK: Optional[str]
    NEIGHBORHOODREVIEWCONTINGENCYDAYS: Optional[int]
    BUYERWAVIEDRISKASSESSMENT: Optional[str]


class OfferDraft(TypedDict, total=False):
    """
    The in-progress offer, built up across the wizard steps.

    Form22A / Form35 may be present while their toggle is off; they are
    only dropped when the submission payload is built.
    """
    MLS_ID: str
    listingPrice: Optional[float]
    buyerdata: BuyerData
    Form22A: FinancingAddendum
    Form35: InspectionAddendum
    requestAgentHelp: bool
    agentHelpNotes: Optional[str]


# ============================================================================
# Wizard Models
# ============================================================================

class WizardPosition(TypedDict):
    """
    Where the wizard is and which optional steps are reachable.
    """
    step: int  # 1..7
    includeFinancingAddendum: bool
    includeInspectionAddendum: bool
    submitted: bool


class ValidationError(TypedDict):
    """
    Structured validation error for UI feedback.
    """
    field: str
    message: str
    expected_format: Optional[str]
    severity: str  # 'Error' | 'Warning'


class SubmissionResult(TypedDict, total=False):
    """
    Terminal outcome of a submission attempt.
    """
    ok: bool
    category: str  # 'success' | 'validation' | 'server' | 'network'
    message: str
    documentUrl: Optional[str]
    listingAgentInfo: Optional[Dict[str, Any]]
    response: Optional[Dict[str, Any]]


class ChatMessage(TypedDict):
    text: str
    isBot: bool


# ============================================================================
# Property Lookup Models
# ============================================================================

class PropertyAddress(TypedDict):
    street: str
    city: str
    state: str
    zipcode: str
    full: str


class PropertyAttribution(TypedDict):
    agentName: Optional[str]
    brokerName: Optional[str]
    mlsName: Optional[str]
    lastUpdated: Optional[str]


class PropertyRecord(TypedDict, total=False):
    """
    Reshaped property lookup result returned to the wizard.
    """
    zpid: int
    mlsId: Optional[str]
    address: PropertyAddress

    price: Optional[float]
    bedrooms: Optional[float]
    bathrooms: Optional[float]
    squareFeet: Optional[int]
    lotSize: Optional[str]
    yearBuilt: Optional[int]
    homeType: str

    homeStatus: str
    daysOnZillow: Optional[int]
    timeOnZillow: Optional[str]

    zestimate: Optional[float]
    priceHistory: List[Dict[str, Any]]
    taxHistory: List[Dict[str, Any]]
    monthlyHoaFee: Optional[int]
    propertyTaxRate: Optional[float]

    originalPhotos: List[str]
    virtualTourUrl: Optional[str]
    description: Optional[str]

    latitude: Optional[float]
    longitude: Optional[float]

    attribution: PropertyAttribution
    schools: List[Dict[str, Any]]
