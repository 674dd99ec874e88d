import argparse
import heapq
import io
import itertools
import os
import sys
from abc import ABC
from dataclasses import dataclass

from bitarray import bitarray
from bitarray.util import ba2int

from bitchannel import BitReader, BitWriter

BITS_PER_WORD = 8
BITS_PER_INT = 32
ALPH_SIZE = 1 << BITS_PER_WORD
PSEUDO_EOF = ALPH_SIZE
SYMBOL_BITS = BITS_PER_WORD + 1
HUFF_NUMBER = 0xface8200
HUFF_TREE = HUFF_NUMBER | 1

# 257 leaves can't be deeper than this
MAX_TREE_DEPTH = ALPH_SIZE

DEBUG_LOW = 1
DEBUG_HIGH = 4

SUFFIX = '.hf'


class HuffException(Exception):
    pass

class BadMagic(HuffException):
    pass

class MalformedHeader(HuffException):
    pass

class MalformedStream(HuffException):
    pass


class HuffmanTree(ABC):
    pass

@dataclass
class Fork(HuffmanTree):
    left: HuffmanTree
    right: HuffmanTree
    weight: int = 0

@dataclass
class Leaf(HuffmanTree):
    symbol: int
    weight: int = 0


def debug_print(debug: int, level: int, msg: str):
    if debug >= level:
        print(msg, file = sys.stderr)

def read_for_counts(reader: BitReader) -> list[int]:
    counts = [0] * (ALPH_SIZE + 1)
    while True:
        val = reader.read_bits(BITS_PER_WORD)
        if val is None:
            break
        counts[val] += 1
    counts[PSEUDO_EOF] = 1
    return counts

def make_tree_from_counts(counts: list[int]) -> HuffmanTree:
    """Huffman merge over every symbol with a nonzero count.

    Ties on weight go to the node created first: leaves in ascending
    symbol order, then merged forks in the order they were built.
    The first node popped becomes the left child.
    """
    order = itertools.count()
    queue = [(w, next(order), Leaf(s, w)) for s, w in enumerate(counts) if w > 0]
    if not queue:
        raise ValueError('no symbol has a nonzero count')
    if len(queue) == 1:
        # Only the sentinel is live; a filler leaf keeps its code non-empty
        filler = 0 if queue[0][2].symbol != 0 else 1
        queue.insert(0, (0, next(order), Leaf(filler, 0)))
    heapq.heapify(queue)
    while len(queue) > 1:
        lw, _, left = heapq.heappop(queue)
        rw, _, right = heapq.heappop(queue)
        heapq.heappush(queue, (lw + rw, next(order), Fork(left, right, lw + rw)))
    return queue[0][2]

def make_codings_from_tree(root: HuffmanTree) -> dict[int, bitarray]:
    if isinstance(root, Leaf):
        raise ValueError('code tree must have at least one branch')
    codings = {}
    def traverse(tree: HuffmanTree, path: bitarray):
        match tree:
            case Fork(l, r, _):
                traverse(l, path + bitarray('0'))
                traverse(r, path + bitarray('1'))
            case Leaf(s, _):
                codings[s] = path
    traverse(root, bitarray(endian='big'))
    return codings

def write_header(tree: HuffmanTree, writer: BitWriter):
    match tree:
        case Fork(l, r, _):
            writer.write_bits(1, 0)
            write_header(l, writer)
            write_header(r, writer)
        case Leaf(s, _):
            writer.write_bits(1, 1)
            writer.write_bits(SYMBOL_BITS, s)

def read_tree_header(reader: BitReader) -> HuffmanTree:
    root = _read_subtree(reader, 0)
    if isinstance(root, Leaf):
        raise MalformedHeader('Tree header has no branches')
    return root

def _read_subtree(reader: BitReader, depth: int) -> HuffmanTree:
    bit = reader.read_bits(1)
    if bit is None:
        raise MalformedHeader('Input ended inside the tree header')
    if bit == 0:
        if depth >= MAX_TREE_DEPTH:
            raise MalformedHeader('Tree header is deeper than %d levels' % MAX_TREE_DEPTH)
        left = _read_subtree(reader, depth + 1)
        right = _read_subtree(reader, depth + 1)
        return Fork(left, right)
    symbol = reader.read_bits(SYMBOL_BITS)
    if symbol is None:
        raise MalformedHeader('Input ended inside a leaf symbol')
    if symbol > PSEUDO_EOF:
        raise MalformedHeader('Leaf symbol %d out of range' % symbol)
    return Leaf(symbol)

def write_compressed_bits(codings: dict[int, bitarray], reader: BitReader, writer: BitWriter):
    while True:
        val = reader.read_bits(BITS_PER_WORD)
        if val is None:
            break
        code = codings[val]
        writer.write_bits(len(code), ba2int(code))
    # Don't forget the pseudo-EOF code
    code = codings[PSEUDO_EOF]
    writer.write_bits(len(code), ba2int(code))

def read_compressed_bits(root: HuffmanTree, reader: BitReader, writer: BitWriter):
    current = root
    while True:
        bit = reader.read_bits(1)
        if bit is None:
            raise MalformedStream('Input ended before PSEUDO_EOF')
        current = current.right if bit else current.left
        if isinstance(current, Leaf):
            if current.symbol == PSEUDO_EOF:
                break
            writer.write_bits(BITS_PER_WORD, current.symbol)
            current = root

def count_nodes(tree: HuffmanTree) -> int:
    match tree:
        case Fork(l, r, _):
            return 1 + count_nodes(l) + count_nodes(r)
        case Leaf():
            return 1

def compress(reader: BitReader, writer: BitWriter, debug: int = 0):
    counts = read_for_counts(reader)
    root = make_tree_from_counts(counts)
    codings = make_codings_from_tree(root)
    debug_print(debug, DEBUG_HIGH, 'tree created with %d nodes' % count_nodes(root))
    if debug >= DEBUG_HIGH:
        for symbol in sorted(codings):
            debug_print(debug, DEBUG_HIGH, '%3d\t%d\t%s' % (symbol, counts[symbol], codings[symbol].to01()))
    writer.write_bits(BITS_PER_INT, HUFF_TREE)
    write_header(root, writer)
    header_bits = writer.bits_written
    reader.reset()
    write_compressed_bits(codings, reader, writer)
    writer.close()
    debug_print(debug, DEBUG_LOW, 'header bits: %d, payload bits: %d'
                % (header_bits, writer.bits_written - header_bits))
    debug_print(debug, DEBUG_LOW, 'bits read: %d, bits written: %d'
                % (reader.bits_read, writer.bits_written))

def decompress(reader: BitReader, writer: BitWriter, debug: int = 0):
    val = reader.read_bits(BITS_PER_INT)
    if val is None:
        raise BadMagic('File too short for a header')
    if val == HUFF_NUMBER:
        raise BadMagic('Count-table header 0x%08x is not supported' % val)
    if val != HUFF_TREE:
        raise BadMagic('Illegal header starts with 0x%08x' % val)
    root = read_tree_header(reader)
    debug_print(debug, DEBUG_HIGH, 'tree read with %d nodes' % count_nodes(root))
    read_compressed_bits(root, reader, writer)
    writer.close()
    debug_print(debug, DEBUG_LOW, 'bits read: %d, bits written: %d'
                % (reader.bits_read, writer.bits_written))

def compress_bytes(source: bytes) -> bytes:
    result = io.BytesIO()
    compress(BitReader(io.BytesIO(source)), BitWriter(result))
    return result.getvalue()

def decompress_bytes(source: bytes) -> bytes:
    result = io.BytesIO()
    decompress(BitReader(io.BytesIO(source)), BitWriter(result))
    return result.getvalue()

def compress_file(src: str, dst: str, debug: int = 0):
    with open(src, 'rb') as fi, open(dst, 'wb') as fo:
        compress(BitReader(fi), BitWriter(fo), debug)

def decompress_file(src: str, dst: str, debug: int = 0):
    with open(src, 'rb') as fi, open(dst, 'wb') as fo:
        decompress(BitReader(fi), BitWriter(fo), debug)

def process_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description = "Huffman coding based compressor with a tree header")
    parser.add_argument("filename", type = str)
    parser.add_argument("--decompress", action = 'store_true')
    parser.add_argument("-o", "--output", type = str, default = None)
    parser.add_argument("--debug", type = int, default = 0,
                        help = "%d prints bit counts, %d also prints the code table" % (DEBUG_LOW, DEBUG_HIGH))
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    args = process_args(argv)
    filename = args.filename
    if args.decompress:
        output = args.output
        if output is None:
            if filename.endswith(SUFFIX) and len(os.path.basename(filename)) > len(SUFFIX):
                output = filename[:-len(SUFFIX)]
            else:
                print('Wrong file extension, only %s files allowed' % SUFFIX, file = sys.stderr)
                sys.exit(-1)
        try:
            decompress_file(filename, output, args.debug)
        except HuffException as e:
            os.remove(output)
            print(str(e), file = sys.stderr)
            sys.exit(-1)
    else:
        output = args.output or filename + SUFFIX
        compress_file(filename, output, args.debug)

if __name__ == '__main__':
    main()
