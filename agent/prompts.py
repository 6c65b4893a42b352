CATEGORIZATION_PROMPT = """
You categorize personal expenses detected in bank notification emails from Costa Rica
and elsewhere. Descriptions may be in Spanish or English.

Pick exactly one category from this list:
- Alimentación (restaurants, supermarkets, groceries, food delivery)
- Transporte (fuel, Uber, taxis, parking, tolls, public transport)
- Servicios (electricity, water, phone, internet, cable, subscriptions)
- Entretenimiento (cinema, theatre, streaming, events)
- Salud (pharmacy, doctors, hospitals, clinics)
- Compras (stores, malls, online shopping)
- Otros (anything that does not clearly fit above)

Expense:
- Merchant: {merchant}
- Description: {description}
- Amount: {amount} {currency}
- Bank: {bank}

Respond with ONLY valid JSON — no markdown, no explanation, no extra text:
{{
  "category": "one of the categories above",
  "confidence": a number between 0.0 and 1.0,
  "reason": "one sentence explanation under 100 characters"
}}
""".strip()
