"""notifications/ -- Outbound email and SMS with an audit trail.

Layer rule: notifications/ may import from core/ and registrar/. It does NOT
import from api/ or auth/.
"""
