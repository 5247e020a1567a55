"""Static defaults: fallback calculation templates and financial-year settings."""

from __future__ import annotations


DEFAULT_FINANCIAL_YEAR = {
    "financialYearStart": "March",
    "financialYearEnd": "February",
    "currencySymbol": "R",
}

_LEARNERSHIP_FREQUENCIES = ["Monthly", "Once-off", "With Income", "End of Learnership"]
_ONCE_OFF_FREQUENCIES = ["Once-off", "With Income"]


def _options(*pairs: tuple[str, str]) -> list[dict]:
    return [{"id": option_id, "name": name, "value": option_id} for option_id, name in pairs]


def _named_options(*names: str) -> list[dict]:
    out = []
    for name in names:
        option_id = name.lower().replace("&", "").replace(" ", "-").replace("--", "-")
        out.append({"id": option_id, "name": name, "value": name})
    return out


def _certainty_field() -> dict:
    return {
        "id": "certaintyPercentage",
        "name": "Certainty %",
        "type": "percentage",
        "required": True,
        "default": 100,
        "validation": {"min": 0, "max": 100},
        "helpText": "Probability of this deal closing (affects forecast calculations)",
    }


DEFAULT_CALCULATION_TEMPLATES: dict[str, dict] = {
    "learnership": {
        "id": "learnership",
        "name": "Learnership Program",
        "description": "For learnership programs with monthly income distribution over the program duration",
        "version": "1.0",
        "status": "active",
        "fields": [
            {"id": "dealName", "name": "Deal Name", "type": "text", "required": True,
             "helpText": "A descriptive name for this learnership deal"},
            _certainty_field(),
            {"id": "learnerCount", "name": "Number of Learners", "type": "number", "required": True,
             "validation": {"min": 1}, "helpText": "Total number of learners in this program"},
            {"id": "costPerLearner", "name": "Income per Learner (R)", "type": "currency", "required": True,
             "helpText": "Revenue amount per learner"},
            {"id": "fundingType", "name": "Funding Type", "type": "select", "required": True,
             "listKey": "fundingTypes", "listType": "tenant-configurable"},
            {"id": "duration", "name": "Duration (Months)", "type": "number", "required": True, "default": 12,
             "validation": {"min": 1, "max": 36}, "helpText": "Length of the learnership program"},
            {"id": "startDate", "name": "Payment Start Date", "type": "date", "required": True,
             "helpText": "When income payments begin"},
            {"id": "paymentFrequency", "name": "Payment Frequency", "type": "select", "required": True,
             "default": "Monthly", "listKey": "paymentFrequencies", "listType": "system"},
        ],
        "costFields": [
            {"id": "facilitatorCost", "name": "Facilitator Cost", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _LEARNERSHIP_FREQUENCIES},
            {"id": "commissionPercentage", "name": "Commission", "type": "percentage", "isPercentage": True,
             "percentageOf": "totalAmount", "hasFrequency": True, "frequencyOptions": _LEARNERSHIP_FREQUENCIES},
            {"id": "travelCost", "name": "Travel Cost", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _LEARNERSHIP_FREQUENCIES},
            {"id": "assessorCost", "name": "Assessor Cost", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _LEARNERSHIP_FREQUENCIES},
            {"id": "moderatorCost", "name": "Moderator Cost", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _LEARNERSHIP_FREQUENCIES},
            {"id": "customCost", "name": "Other Cost", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _LEARNERSHIP_FREQUENCIES, "hasCustomLabel": True},
        ],
        "formula": {
            "type": "simple",
            "expression": "learnerCount * costPerLearner",
            "description": "Number of Learners x Income per Learner",
        },
        "distributionType": "monthly",
        "hasPaymentFrequency": True,
        "hasCertaintyPercentage": True,
        "hasContractDuration": True,
        "systemLists": {
            "paymentFrequencies": [
                {"id": "monthly", "name": "Monthly", "value": "Monthly"},
                {"id": "once-off", "name": "Once-off", "value": "Once-off"},
            ]
        },
        "defaultCustomLists": {
            "fundingTypes": _options(("seta", "SETA Funded"), ("self", "Self Funded"), ("tax", "Tax Rebate")),
            "learnershipTypes": _options(
                ("generic-management", "Generic Management NQF 4"),
                ("business-admin", "Business Administration NQF 3"),
                ("business-admin-nqf4", "Business Administration NQF 4"),
                ("human-resources", "Human Resources NQF 4"),
                ("project-management", "Project Management NQF 4"),
                ("contact-centre", "Contact Centre NQF 3"),
                ("wholesale-retail", "Wholesale & Retail NQF 3"),
                ("wholesale-retail-nqf4", "Wholesale & Retail NQF 4"),
                ("new-venture-creation", "New Venture Creation NQF 4"),
                ("it-end-user", "IT End User Computing NQF 3"),
                ("other", "Other"),
            ),
        },
    },
    "once-off-training": {
        "id": "once-off-training",
        "name": "Once-Off Training",
        "description": "For single training events like compliance courses or workshops",
        "version": "1.0",
        "status": "active",
        "fields": [
            {"id": "dealName", "name": "Deal Name", "type": "text", "required": True},
            _certainty_field(),
            {"id": "courseName", "name": "Course", "type": "select", "required": True,
             "listKey": "courseOptions", "listType": "tenant-configurable", "allowCustom": True},
            {"id": "traineeCount", "name": "Number of Trainees", "type": "number", "required": True,
             "validation": {"min": 1}},
            {"id": "pricePerPerson", "name": "Price per Person (R)", "type": "currency", "required": True},
            {"id": "startDate", "name": "Training Date", "type": "date", "required": True},
        ],
        "costFields": [
            {"id": "commissionPercentage", "name": "Commission", "type": "percentage", "isPercentage": True,
             "percentageOf": "totalAmount", "hasFrequency": True, "frequencyOptions": _ONCE_OFF_FREQUENCIES},
            {"id": "travelCost", "name": "Travel Cost", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _ONCE_OFF_FREQUENCIES},
            {"id": "manualsCost", "name": "Manuals/Materials", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _ONCE_OFF_FREQUENCIES},
            {"id": "accommodationCost", "name": "Accommodation", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _ONCE_OFF_FREQUENCIES},
            {"id": "accreditationCost", "name": "Accreditation", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _ONCE_OFF_FREQUENCIES},
            {"id": "customCost", "name": "Other Cost", "type": "currency",
             "hasFrequency": True, "frequencyOptions": _ONCE_OFF_FREQUENCIES, "hasCustomLabel": True},
        ],
        "formula": {
            "type": "simple",
            "expression": "traineeCount * pricePerPerson",
            "description": "Number of Trainees x Price per Person",
        },
        "distributionType": "once-off",
        "hasPaymentFrequency": False,
        "hasCertaintyPercentage": True,
        "hasContractDuration": False,
        "systemLists": {},
        "defaultCustomLists": {
            "courseOptions": _options(
                ("first-aid-1", "First Aid Level 1"),
                ("first-aid-2", "First Aid Level 2"),
                ("first-aid-3", "First Aid Level 3"),
                ("fire-safety", "Fire Safety"),
                ("ohs", "Occupational Health & Safety"),
            )
        },
    },
    "compliance": {
        "id": "compliance",
        "name": "Compliance Training",
        "description": "For compliance courses like First Aid, Fire Safety, OHS",
        "version": "1.0",
        "status": "active",
        "inheritsFrom": "once-off-training",
        "defaultCustomLists": {
            "courseOptions": _named_options(
                "First Aid Level 1",
                "First Aid Level 2",
                "First Aid Level 3",
                "Fire Fighting",
                "Fire Marshal",
                "Health & Safety Rep",
                "Evacuation Marshal",
                "OHS Act Training",
                "Incident Investigation",
                "Working at Heights",
                "Confined Spaces",
                "Forklift Operation",
                "Other",
            )
        },
    },
    "otherCourses": {
        "id": "otherCourses",
        "name": "Other Courses",
        "description": "For workshops and soft skills training",
        "version": "1.0",
        "status": "active",
        "inheritsFrom": "once-off-training",
        "defaultCustomLists": {
            "courseOptions": _named_options(
                "Leadership Workshop",
                "Communication Skills",
                "Project Management",
                "Time Management",
                "Team Building",
                "Excel Basic",
                "Excel Intermediate",
                "Excel Advanced",
                "Customer Service",
                "Sales Training",
                "Other",
            )
        },
    },
    "subscription": {
        "id": "subscription",
        "name": "Subscription Service",
        "description": "For recurring subscription-based products like TAP Business",
        "version": "1.0",
        "status": "active",
        "fields": [
            {"id": "dealName", "name": "Deal Name", "type": "text", "required": True},
            _certainty_field(),
            {"id": "employeeCount", "name": "Number of Employees", "type": "number", "required": True,
             "validation": {"min": 1}},
            {"id": "costPerEmployee", "name": "Cost per Employee/Month (R)", "type": "currency", "required": True},
            {"id": "packageType", "name": "Package Type", "type": "select", "required": False,
             "listKey": "packageTypes", "listType": "tenant-configurable"},
            {"id": "startDate", "name": "Start Date", "type": "date", "required": True},
            {"id": "paymentType", "name": "Payment Type", "type": "select", "required": True,
             "default": "Monthly", "listKey": "subscriptionPaymentTypes", "listType": "system"},
            {"id": "contractMonths", "name": "Contract Duration (Months)", "type": "number", "required": True,
             "default": 12, "validation": {"min": 1, "max": 60}},
        ],
        "costFields": [
            {"id": "commissionPercentage", "name": "Commission", "type": "percentage", "isPercentage": True,
             "percentageOf": "totalAmount", "hasFrequency": True,
             "frequencyOptions": ["Monthly", "Once-off", "With Income"]},
            {"id": "customCost", "name": "Other Cost", "type": "currency", "hasFrequency": True,
             "frequencyOptions": ["Monthly", "Once-off", "With Income"], "hasCustomLabel": True},
        ],
        "formula": {
            "type": "simple",
            "expression": "employeeCount * costPerEmployee * contractMonths",
            "description": "Employees x Monthly Fee x Contract Months",
        },
        "distributionType": "monthly",
        "hasPaymentFrequency": True,
        "hasCertaintyPercentage": True,
        "hasContractDuration": True,
        "systemLists": {
            "subscriptionPaymentTypes": [
                {"id": "monthly", "name": "Monthly", "value": "Monthly"},
                {"id": "annual", "name": "Annual", "value": "Annual"},
            ]
        },
        "defaultCustomLists": {
            "packageTypes": _options(
                ("basic", "Basic Package"),
                ("standard", "Standard Package"),
                ("premium", "Premium Package"),
                ("enterprise", "Enterprise Package"),
            )
        },
    },
    "consulting": {
        "id": "consulting",
        "name": "Consulting Service",
        "description": "For consulting engagements billed by hours or days",
        "version": "1.0",
        "status": "active",
        "fields": [
            {"id": "dealName", "name": "Engagement Name", "type": "text", "required": True},
            _certainty_field(),
            {"id": "consultationType", "name": "Consultation Type", "type": "select", "required": True,
             "listKey": "consultationTypes", "listType": "tenant-configurable"},
            {"id": "billingUnit", "name": "Billing Unit", "type": "select", "required": True, "default": "hours",
             "listKey": "billingUnits", "listType": "system"},
            {"id": "quantity", "name": "Hours/Days", "type": "number", "required": True,
             "validation": {"min": 0.5}},
            {"id": "ratePerUnit", "name": "Rate (R)", "type": "currency", "required": True},
            {"id": "startDate", "name": "Service Date", "type": "date", "required": True},
        ],
        "costFields": [
            {"id": "travelCost", "name": "Travel Cost", "type": "currency", "hasFrequency": False},
            {"id": "materialsCost", "name": "Materials/Resources", "type": "currency", "hasFrequency": False},
            {"id": "subcontractorCost", "name": "Subcontractor Cost", "type": "currency", "hasFrequency": False},
            {"id": "customCost", "name": "Other Cost", "type": "currency", "hasFrequency": False,
             "hasCustomLabel": True},
        ],
        "formula": {"type": "simple", "expression": "quantity * ratePerUnit", "description": "Hours/Days x Rate"},
        "distributionType": "once-off",
        "hasPaymentFrequency": False,
        "hasCertaintyPercentage": True,
        "hasContractDuration": False,
        "systemLists": {
            "billingUnits": _options(("hours", "Hours"), ("days", "Days")),
        },
        "defaultCustomLists": {
            "consultationTypes": _options(
                ("strategy", "Strategic Planning"),
                ("hr", "HR Consulting"),
                ("training-needs", "Training Needs Analysis"),
                ("compliance", "Compliance Advisory"),
                ("general", "General Consulting"),
            )
        },
    },
}
