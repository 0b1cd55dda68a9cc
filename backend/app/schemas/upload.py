from pydantic import BaseModel


class UploadResponse(BaseModel):
    """上传成功后返回可直接写入日记的文件 URL"""

    url: str
