"""
Prompt used by every structured (JSON-producing) engine.
"""

EXPENSE_CATEGORIES = (
    '旅費交通費',
    '交際費',
    '消耗品費',
    '通信費',
    '水道光熱費',
    '広告宣伝費',
    '損害保険料',
    '租税公課',
    '地代家賃',
    '外注費',
    '会議費',
    '研修費',
    '新聞図書費',
    '未分類',
)

PAYMENT_METHODS = (
    'cash',
    'credit_card',
    'debit',
    'electronic_money',
    'bank_transfer',
    'unknown',
)

RECEIPT_EXTRACTION_PROMPT = f"""You are reading a photographed Japanese receipt or invoice.
Extract the fields below and answer with a single JSON object and nothing else.

{{
  "issuerName": "business name as printed",
  "tNumber": "qualified-invoice registration number, T followed by 13 digits, or null",
  "transactionDate": "YYYY-MM-DD",
  "description": "short summary of what was purchased",
  "subtotalExcludingTax": 0,
  "taxBreakdown": [
    {{"taxRate": 10, "subtotal": 0, "taxAmount": 0, "total": 0}}
  ],
  "totalAmount": 0,
  "suggestedCategory": "one of: {', '.join(EXPENSE_CATEGORIES)}",
  "categoryConfidence": 0.0,
  "paymentMethod": "one of: {', '.join(PAYMENT_METHODS)}",
  "confidence": {{
    "issuerName": 0.0,
    "tNumber": 0.0,
    "transactionDate": 0.0,
    "totalAmount": 0.0,
    "taxBreakdown": 0.0
  }}
}}

Rules:
- Amounts are plain numbers in yen without symbols or separators.
- taxRate is 8 (reduced rate) or 10 (standard rate). Only list rates printed on the receipt.
- Use null for anything you cannot read. Never guess a registration number.
- Confidence values are between 0 and 1 and reflect how clearly each field was printed.
"""
