"""
Armazenamento de mídia (imagens dos eventos).

Grava os arquivos em um diretório local servido publicamente
e devolve a URL pública correspondente.
"""
import base64
import binascii
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple
from ..core.errors import InvalidUpload

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}


def decode_image_upload(
    image_base64: str,
    filename: str,
    max_base64_chars: int,
    max_bytes: int,
) -> Tuple[str, bytes]:
    """
    Valida e decodifica uma imagem enviada em base64.

    O tamanho do base64 é verificado ANTES de decodificar
    e o tamanho em bytes, depois.

    Returns:
        (extensão em minúsculas, bytes da imagem)
    """
    extension = PurePosixPath(filename or "").suffix.lower()
    if extension not in ALLOWED_IMAGE_EXTENSIONS:
        raise InvalidUpload(
            f"Formato de imagem não suportado: '{extension or filename}'. "
            f"Use: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}"
        )

    if len(image_base64) > max_base64_chars:
        raise InvalidUpload(
            f"Payload muito grande. Tamanho máximo: {max_base64_chars} caracteres (base64).",
            too_large=True,
        )

    try:
        data = base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidUpload("Erro ao decodificar base64. Verifique o formato da imagem.") from e

    if not data:
        raise InvalidUpload("Imagem vazia.")

    if len(data) > max_bytes:
        raise InvalidUpload(
            f"Imagem muito grande. Tamanho máximo: {max_bytes / (1024 * 1024):.1f}MB.",
            too_large=True,
        )

    return extension, data


class LocalMediaStorage:
    """
    Storage de objetos em disco: upload(path, data) -> URL pública.
    """

    def __init__(self, media_root: str, public_base_url: str) -> None:
        self._root = Path(media_root).resolve()
        self._base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self._root / path.lstrip("/")).resolve()
        if self._root not in target.parents:
            raise InvalidUpload(f"Caminho inválido para upload: {path}")
        return target

    def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        os.makedirs(target.parent, exist_ok=True)
        with open(target, "wb") as f:
            f.write(data)
        relative = target.relative_to(self._root).as_posix()
        url = f"{self._base_url}/{relative}"
        logger.info(f"Arquivo armazenado: path={relative}, size={len(data)} bytes")
        return url

    def path_for_url(self, url: Optional[str]) -> Optional[str]:
        """
        Caminho relativo de uma URL emitida por este storage.
        URLs externas (ou vazias) retornam None.
        """
        prefix = f"{self._base_url}/"
        if not url or not url.startswith(prefix):
            return None
        return url[len(prefix):]

    def delete(self, path: str) -> bool:
        """
        Remove um arquivo do storage. Retorna False se ele não existia
        ou não pôde ser removido; a falha é só registrada em log.
        """
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Falha ao remover arquivo: path={path}, error={e}")
            return False
        logger.info(f"Arquivo removido: path={target.relative_to(self._root).as_posix()}")
        return True
