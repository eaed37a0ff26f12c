import io
import os

import pytest
import trio
import trio.testing

from trio_asyncprocess import ByteStream, Pipe


async def collect(stream: ByteStream) -> bytes:
    chunks = []
    async with stream:
        async for chunk in stream:
            chunks.append(chunk)
    return b"".join(chunks)


class TestPipe:
    def test_write_and_close(self):
        pipe = Pipe()
        pipe.write(b"hello")
        pipe.close_write()
        assert os.read(pipe.read_fd, 100) == b"hello"
        assert os.read(pipe.read_fd, 100) == b""
        pipe.close()
        assert pipe.read_fd is None and pipe.write_fd is None
        pipe.close()

    def test_write_after_close(self):
        pipe = Pipe()
        pipe.close()
        with pytest.raises(trio.ClosedResourceError):
            pipe.write(b"late")

    @pytest.mark.trio
    async def test_streams_take_ownership(self):
        pipe = Pipe()
        send, receive = pipe.send_stream(), pipe.receive_stream()
        assert pipe.read_fd is None and pipe.write_fd is None
        async with send, receive:
            await send.send_all(b"abc")
            assert await receive.receive_some(10) == b"abc"


class TestByteStream:
    @pytest.mark.trio
    async def test_yields_chunks_until_eof(self):
        stream = ByteStream()
        stream.pipe.write(b"first ")
        stream.pipe.write(b"second")
        stream.pipe.close_write()
        assert await collect(stream) == b"first second"
        assert stream.finished
        assert stream.pipe.read_fd is None

    @pytest.mark.trio
    async def test_not_restartable(self):
        stream = ByteStream()
        stream.pipe.write(b"once")
        stream.pipe.close_write()
        assert await collect(stream) == b"once"
        assert await stream.receive_some() == b""
        assert [chunk async for chunk in stream] == []

    @pytest.mark.trio
    async def test_tee_to_file_object(self):
        sink = io.BytesIO()
        stream = ByteStream(tee=sink)
        payload = [b"alpha\n", b"beta\n", bytes(range(256))]
        seen = []

        async def produce():
            for chunk in payload:
                stream.pipe.write(chunk)
                await trio.testing.wait_all_tasks_blocked()
            stream.pipe.close_write()

        async with trio.open_nursery() as nursery:
            nursery.start_soon(produce)
            async with stream:
                async for chunk in stream:
                    seen.append(chunk)

        assert sink.getvalue() == b"".join(seen) == b"".join(payload)

    @pytest.mark.trio
    async def test_tee_to_pipe_and_fd(self):
        tee_pipe = Pipe()
        first = ByteStream(tee=tee_pipe)
        first.pipe.write(b"via pipe")
        first.pipe.close_write()
        assert await collect(first) == b"via pipe"
        tee_pipe.close_write()
        assert os.read(tee_pipe.read_fd, 100) == b"via pipe"
        tee_pipe.close()

        read_fd, write_fd = os.pipe()
        try:
            second = ByteStream(tee=write_fd)
            second.pipe.write(b"via fd")
            second.pipe.close_write()
            assert await collect(second) == b"via fd"
            assert os.read(read_fd, 100) == b"via fd"
        finally:
            os.close(read_fd)
            os.close(write_fd)

    @pytest.mark.trio
    async def test_tee_to_send_stream(self):
        send, receive = trio.testing.memory_stream_one_way_pair()
        stream = ByteStream(tee=send)
        stream.pipe.write(b"memory")
        stream.pipe.close_write()
        assert await collect(stream) == b"memory"
        assert await receive.receive_some(100) == b"memory"

    @pytest.mark.trio
    async def test_single_consumer(self):
        stream = ByteStream()
        received = []

        async def consume():
            received.append(await stream.receive_some())

        async with trio.open_nursery() as nursery:
            nursery.start_soon(consume)
            await trio.testing.wait_all_tasks_blocked()
            with pytest.raises(trio.BusyResourceError):
                await stream.receive_some()
            stream.pipe.write(b"still here")

        assert received == [b"still here"]
        await stream.aclose()

    @pytest.mark.trio
    async def test_cancellation_tears_down(self):
        stream = ByteStream()
        with trio.move_on_after(0.05):
            await stream.receive_some()
        assert stream.finished
        assert stream.pipe.read_fd is None
        assert stream.pipe.write_fd is None
        assert await stream.receive_some() == b""

    @pytest.mark.trio
    async def test_abandoning_closes_the_pipe(self):
        stream = ByteStream()
        stream.pipe.write(b"more than we read")
        async with stream:
            async for chunk in stream:
                break
        assert stream.finished
        assert stream.pipe.read_fd is None
        await stream.aclose()
