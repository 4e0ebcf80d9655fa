"""Route modules, one APIRouter per area."""
