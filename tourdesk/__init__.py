"""
tourdesk: flight selection, hold and ticketing for touring parties.

Moves each passenger's chosen flight option from client preference to a
ticketed reservation (PNR) before a time-boxed hold lapses:
1. Booking unit derivation from leg passenger assignments
2. Selection lifecycle (pending -> held -> ticketed, with reversal)
3. Holds with read-time expiry and urgency classification
4. Ticketing ledger with store-enforced PNR uniqueness
5. An urgency-ranked work queue for agents
"""

__version__ = "0.1.0"
