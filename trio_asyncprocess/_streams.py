import os
from typing import Any, Optional, Union

import trio

__all__ = ["Pipe", "ByteStream"]


class Pipe:
    """An anonymous OS pipe.

    Bind a pipe to one of a child's standard streams and the child gets the
    matching end; the other end stays with us. The child's end is closed in
    this process once the child has been launched.
    """

    def __init__(self) -> None:
        self.read_fd: Optional[int]
        self.write_fd: Optional[int]
        self.read_fd, self.write_fd = os.pipe()

    def __repr__(self) -> str:
        return f"<Pipe read_fd={self.read_fd} write_fd={self.write_fd}>"

    def close_read(self) -> None:
        if self.read_fd is not None:
            fd, self.read_fd = self.read_fd, None
            os.close(fd)

    def close_write(self) -> None:
        if self.write_fd is not None:
            fd, self.write_fd = self.write_fd, None
            os.close(fd)

    def close(self) -> None:
        self.close_read()
        self.close_write()

    def write(self, data: bytes) -> None:
        """Write all of ``data`` to the write end, blocking if the pipe is full."""
        if self.write_fd is None:
            raise trio.ClosedResourceError("write end of pipe is closed")
        view = memoryview(data)
        while view:
            written = os.write(self.write_fd, view)
            view = view[written:]

    def receive_stream(self) -> trio.lowlevel.FdStream:
        """Hand the read end over to a new :class:`trio.lowlevel.FdStream`."""
        if self.read_fd is None:
            raise trio.ClosedResourceError("read end of pipe is closed")
        fd, self.read_fd = self.read_fd, None
        return trio.lowlevel.FdStream(fd)

    def send_stream(self) -> trio.lowlevel.FdStream:
        """Hand the write end over to a new :class:`trio.lowlevel.FdStream`."""
        if self.write_fd is None:
            raise trio.ClosedResourceError("write end of pipe is closed")
        fd, self.write_fd = self.write_fd, None
        return trio.lowlevel.FdStream(fd)


TeeTarget = Union[Pipe, int, trio.abc.SendStream, Any]


class ByteStream(trio.abc.AsyncResource):
    """The output of a child process, as an async iterator of byte chunks.

    Assign a :class:`ByteStream` to :attr:`AsyncProcess.stdout` or
    :attr:`AsyncProcess.stderr`, then iterate over it while the process
    runs::

        async with stream:
            async for chunk in stream:
                ...

    Chunks are produced in the order the child wrote them, as soon as they
    are available. Iteration ends once the child (and anyone else holding
    the write end of the pipe) has closed it.

    A stream can be consumed only once, and by only one task at a time;
    a second concurrent consumer gets :exc:`trio.BusyResourceError`. The
    pipe's read end is closed, and Trio stops watching it, as soon as
    end-of-file is seen, when the consumer fails or is cancelled while
    waiting, or when :meth:`aclose` is called. Use ``async with`` to be sure
    that happens if you stop iterating early.

    Args:
      tee (optional): Somewhere that should also receive a copy of every
          chunk, unmodified and in order. This can be a :class:`Pipe` (its
          write end is used), a file descriptor, a
          :class:`trio.abc.SendStream`, or a binary file object such as
          ``sys.stdout.buffer``.
      chunk_size (int): The most bytes to read from the pipe at once.

    """

    def __init__(self, tee: Optional[TeeTarget] = None, *, chunk_size: int = 65536):
        self.pipe = Pipe()
        self.tee = tee
        self.chunk_size = chunk_size
        self._receive_stream: Optional[trio.lowlevel.FdStream] = None
        self._finished = False

    def __repr__(self) -> str:
        return f"<ByteStream {self.pipe!r} tee={self.tee!r}>"

    @property
    def finished(self) -> bool:
        return self._finished

    async def receive_some(self) -> bytes:
        """Return the next chunk of output, or ``b""`` at end-of-file."""
        if self._finished:
            await trio.lowlevel.checkpoint()
            return b""
        if self._receive_stream is None:
            self._receive_stream = self.pipe.receive_stream()
        try:
            chunk = await self._receive_stream.receive_some(self.chunk_size)
            if chunk:
                await self._forward(chunk)
        except trio.BusyResourceError:
            # Someone else is reading; the stream is still theirs
            raise
        except BaseException:
            await self._teardown()
            raise
        if not chunk:
            await self._teardown()
        return chunk

    async def _forward(self, chunk: bytes) -> None:
        tee = self.tee
        if tee is None:
            return
        if isinstance(tee, trio.abc.SendStream):
            await tee.send_all(chunk)
        elif isinstance(tee, Pipe):
            tee.write(chunk)
        elif isinstance(tee, int):
            view = memoryview(chunk)
            while view:
                view = view[os.write(tee, view) :]
        else:
            tee.write(chunk)
            tee.flush()

    async def _teardown(self) -> None:
        self._finished = True
        # The write end belongs to the child by now; if it was never handed
        # over, close it so nothing can keep the stream alive.
        self.pipe.close_write()
        if self._receive_stream is not None:
            receive_stream, self._receive_stream = self._receive_stream, None
            await trio.aclose_forcefully(receive_stream)
        self.pipe.close_read()

    async def aclose(self) -> None:
        await self._teardown()
        await trio.lowlevel.checkpoint()

    def __aiter__(self) -> "ByteStream":
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.receive_some()
        if not chunk:
            raise StopAsyncIteration
        return chunk
