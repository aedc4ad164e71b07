from pydantic import BaseModel


class MessageResponse(BaseModel):
    """Plain acknowledgement response."""
    
    message: str
